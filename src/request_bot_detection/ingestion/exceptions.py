"""
Errors raised while loading exported request files.
"""


class IngestionError(Exception):
    """Base class for request file loading errors."""


class ValidationError(IngestionError):
    """
    Raised when a request record is missing a field or has a bad value.

    Attributes:
        field: The field name that failed validation (optional)
        value: The invalid value (optional)
        row: Zero-based position of the record in the file (optional)
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: object | None = None,
        row: int | None = None,
    ):
        self.field = field
        self.value = value
        self.row = row
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with field, value and row context."""
        context = []
        if self.row is not None:
            context.append(f"row={self.row}")
        if self.field:
            context.append(f"field='{self.field}'")
        if self.value is not None:
            context.append(f"value={self.value!r}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class ParseError(IngestionError):
    """
    Raised when a request file cannot be read.

    Attributes:
        file_path: The file that failed to parse (optional)
    """

    def __init__(self, message: str, file_path: str | None = None):
        self.file_path = file_path
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.file_path:
            return f"{self.message} (file: {self.file_path})"
        return self.message
