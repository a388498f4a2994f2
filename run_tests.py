#!/usr/bin/env python3
"""
테스트 실행 스크립트

Usage:
    python run_tests.py                # 모든 테스트 실행
    python run_tests.py --unit         # 단위 테스트만 실행
    python run_tests.py --integration  # 통합 테스트만 실행
    python run_tests.py --coverage     # 커버리지 포함하여 실행
    python run_tests.py --quick        # 첫 실패에서 중단
    python run_tests.py -k redis       # 키워드로 테스트 선택
"""

import argparse
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent

SUITES = {
    "unit": ("tests/unit/", "단위 테스트 실행"),
    "integration": ("tests/integration/", "통합 테스트 실행"),
    "all": ("tests/", "전체 테스트 실행"),
}


def run_command(cmd, description=""):
    """명령어 실행"""
    print(f"\n{'='*60}")
    print(f"🚀 {description}")
    print(f"{'='*60}")
    print(f"실행 명령어: {' '.join(cmd)}\n")

    result = subprocess.run(cmd, cwd=PROJECT_ROOT)
    if result.returncode == 0:
        print(f"\n✅ {description} 성공!")
        return True

    print(f"\n❌ {description} 실패! (exit code: {result.returncode})")
    return False


def pytest_command(path, extra_args):
    return [sys.executable, "-m", "pytest", path, "-v", "--tb=short", *extra_args]


def main():
    parser = argparse.ArgumentParser(description="roomcast 테스트 실행 스크립트")
    suite = parser.add_mutually_exclusive_group()
    suite.add_argument("--unit", action="store_true", help="단위 테스트만 실행")
    suite.add_argument("--integration", action="store_true", help="통합 테스트만 실행")
    parser.add_argument("--coverage", action="store_true", help="커버리지 포함하여 실행")
    parser.add_argument("--quick", action="store_true", help="빠른 테스트 (실패 시 중단)")
    parser.add_argument("--install", action="store_true", help="테스트 의존성 설치")
    parser.add_argument("-k", dest="keyword", help="pytest -k 표현식")

    args = parser.parse_args()
    print(f"📁 프로젝트 디렉토리: {PROJECT_ROOT.absolute()}")

    if args.install and not run_command(
        [sys.executable, "-m", "pip", "install", "-e", ".[test]"],
        "테스트 의존성 설치"
    ):
        return 1

    name = "unit" if args.unit else "integration" if args.integration else "all"
    path, description = SUITES[name]

    extra_args = []
    if args.quick:
        extra_args.append("-x")
    if args.keyword:
        extra_args += ["-k", args.keyword]
    if args.coverage:
        extra_args += ["--cov=roomcast", "--cov-report=term-missing", "--cov-report=html:htmlcov"]

    success = run_command(pytest_command(path, extra_args), description)

    print(f"\n{'='*60}")
    if success:
        print("🎉 모든 테스트가 통과했습니다!")
        if args.coverage:
            print("📊 커버리지 리포트가 htmlcov/index.html에 생성되었습니다.")
    else:
        print("💥 일부 테스트가 실패했습니다. 로그를 확인해주세요.")
    print(f"{'='*60}")

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
