"""molasses SDK exception types."""

from __future__ import annotations


class MolassesError(Exception):
    """Base error for the molasses SDK."""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class MolassesErrorCodes:
    """MolassesError code constants."""

    CONFIG_ERROR: str = "CONFIG_ERROR"
    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    VALIDATION: str = "VALIDATION_ERROR"
    FEATURE_NOT_FOUND: str = "FEATURE_NOT_FOUND"
    UNAUTHORIZED: str = "UNAUTHORIZED"
    HTTP_ERROR: str = "HTTP_ERROR"
    CONNECTION_ERROR: str = "CONNECTION_ERROR"
    PARSE_ERROR: str = "PARSE_ERROR"
