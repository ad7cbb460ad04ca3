from typing import Optional, Dict, Any


class LogshipError(Exception):
    def __init__(
        self,
        message: str,
        code: str = "LOGSHIP_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(LogshipError):
    def __init__(self, message: str = "Invalid configuration", code: str = "CONFIGURATION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class InvalidPatternError(ConfigurationError):
    def __init__(self, pattern: str, message: str):
        super().__init__(
            f"Invalid container name pattern '{pattern}': {message}",
            "INVALID_PATTERN",
            {"pattern": pattern}
        )


class UnknownInputTypeError(ConfigurationError):
    def __init__(self, input_type: str):
        super().__init__(
            f"Unknown input type: {input_type}",
            "UNKNOWN_INPUT_TYPE",
            {"type": input_type}
        )


class InputAlreadyStartedError(ConfigurationError):
    def __init__(self, input_type: str):
        super().__init__(
            f"Input '{input_type}' already started",
            "INPUT_ALREADY_STARTED",
            {"type": input_type}
        )


class RuntimeClientError(LogshipError):
    pass


class DockerConnectionError(RuntimeClientError):
    def __init__(self, message: str = "Failed to connect to Docker daemon"):
        super().__init__(message, "DOCKER_CONNECTION_ERROR")


class DockerOperationError(RuntimeClientError):
    def __init__(self, operation: str, message: str):
        super().__init__(
            f"Docker operation '{operation}' failed: {message}",
            "DOCKER_OPERATION_ERROR",
            {"operation": operation}
        )


class ContainerNotFoundError(RuntimeClientError):
    def __init__(self, container_id: str):
        super().__init__(
            f"container with id {container_id} not found",
            "CONTAINER_NOT_FOUND",
            {"container_id": container_id}
        )


class LogStreamError(RuntimeClientError):
    def __init__(self, container_id: str, message: str):
        super().__init__(
            f"Log stream for container {container_id} failed: {message}",
            "LOG_STREAM_ERROR",
            {"container_id": container_id}
        )


class SinceDBError(LogshipError):
    def __init__(self, path: str, message: str):
        super().__init__(
            f"sincedb {path}: {message}",
            "SINCEDB_ERROR",
            {"path": path}
        )
