"""Custom exception hierarchy for procyard."""


class ProcyardError(Exception):
    """Base for all procyard errors."""


class ConfigError(ProcyardError):
    """Missing or invalid project configuration."""


class DuplicateNameError(ConfigError):
    """Two processes or two tasks share a name."""


class TaskNotFoundError(ConfigError):
    """A task name (requested or referenced) does not resolve."""


class TaskCycleError(ConfigError):
    """A composite task references itself through its children."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = list(chain)
        super().__init__("Task cycle detected: " + " -> ".join(self.chain))


class SpawnError(ProcyardError):
    """The OS failed to launch a process."""


class StaleStateError(ProcyardError):
    """Persisted daemon state refers to a manager that is gone."""


class LockHeldError(ProcyardError):
    """Another live daemon owns this project."""


class StateIOError(ProcyardError):
    """Reading or writing the state directory failed."""


class ProcessStateError(ProcyardError):
    """Invalid process lifecycle transition."""
