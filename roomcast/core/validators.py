"""
입력 검증 유틸리티

채팅방 이름, 사용자 이름 같은 표시용 문자열과 필수 식별자를 검증합니다.
실패 시 필드별 ValidationError 를 담은 ValidationException(422)을 발생시킵니다.
"""

from typing import Any

from .errors import ValidationException, ValidationError


class Validator:
    """입력 검증을 위한 유틸리티 클래스"""

    @staticmethod
    def validate_required(value: Any, field_name: str) -> Any:
        """필수 필드 검증 (None/공백 문자열 거부)"""
        if value is None or (isinstance(value, str) and value.strip() == ""):
            raise ValidationException(
                f"{field_name} is required",
                validation_errors=[
                    ValidationError(field=field_name, message="This field is required", value=value)
                ]
            )
        return value

    @staticmethod
    def validate_display_name(value: Any, field_name: str, max_length: int) -> str:
        """
        표시용 이름 검증

        Returns:
            앞뒤 공백을 제거한 이름
        """
        Validator.validate_required(value, field_name)
        if not isinstance(value, str):
            raise ValidationException(
                f"{field_name} must be a string",
                validation_errors=[
                    ValidationError(field=field_name, message="Must be a string", value=value)
                ]
            )

        name = value.strip()
        if len(name) > max_length:
            raise ValidationException(
                f"{field_name} is too long",
                validation_errors=[
                    ValidationError(
                        field=field_name,
                        message=f"Must be no more than {max_length} characters long",
                        value=len(name)
                    )
                ]
            )
        return name
