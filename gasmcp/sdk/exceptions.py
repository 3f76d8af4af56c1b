class GASError(Exception):
    """Base class for all gas-mcp exceptions."""
    pass

class ValidationError(GASError):
    """Base class for validation errors."""
    pass

class LocalPathError(ValidationError):
    """Raised when an input appears to be a local file path instead of a script ID."""
    pass

class InvalidScriptIdError(ValidationError):
    """Raised when a script ID is malformed."""
    pass

class AuthError(GASError):
    """Raised when credentials cannot be resolved or refreshed."""
    pass

class NotAuthenticatedError(AuthError):
    """Raised when an API client is requested before authenticate() succeeded."""
    pass

class RemoteApiError(GASError):
    """Wraps a failure reported by the Apps Script or Drive API."""
    pass

class FileNotFoundInProjectError(GASError):
    """Raised when a named file does not exist in a project's file collection."""

    def __init__(self, script_id: str, file_name: str):
        self.script_id = script_id
        self.file_name = file_name
        super().__init__(f"File '{file_name}' not found in project {script_id}")

class ConflictError(GASError):
    """Raised when project content changed between read and write."""
    pass

class CryptoError(GASError):
    """Raised for malformed envelopes, bad keys or authentication tag mismatches."""
    pass

class IntegrityError(GASError):
    """Raised when a backup checksum does not match its property mapping."""
    pass

class ConfigNotFoundError(GASError):
    """Raised when an environment-specific clasp config file is missing."""
    pass

class SubprocessError(GASError):
    """Raised when a clasp invocation exits non-zero, times out or cannot start."""

    def __init__(self, message: str, command: str = "", returncode=None, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)

class UnknownToolError(GASError):
    """Raised when a tool name has no registered handler."""
    pass
