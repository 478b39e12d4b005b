class DeployError(Exception):
    """Base class for everything the deployer raises on purpose."""


class ConfigError(DeployError):
    pass


class ChangeDetectionError(DeployError):
    pass


class FileReadError(DeployError):
    def __init__(self, path, reason):
        super().__init__(f'cannot read {path}: {reason}')
        self.path = path


class ExecutionError(DeployError):
    """The target rejected a submitted script."""


class LoggingError(DeployError):
    """An audit row could not be written after the file was attempted."""
