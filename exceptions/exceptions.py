class StepPreconditionError(Exception):
    def __init__(self, code: str, message: str, context: str = ""):
        super().__init__(message)
        self.code = code
        self.context = context


class ConfigurationError(StepPreconditionError):
    """Raised before any pipeline stage runs when the config or input is unusable."""

    def __init__(self, issues, context: str = "run_pipeline"):
        message = "; ".join(f"{i.code}: {i.message}" for i in issues) or "invalid configuration"
        super().__init__("INVALID_CONFIG", message, context=context)
        self.issues = list(issues)


class InvariantViolation(RuntimeError):
    """Programming error: a stage contract was broken. Never recoverable."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class GridShapeError(InvariantViolation):
    def __init__(self, message: str):
        super().__init__("GRID_SHAPE_MISMATCH", message)


class DanglingClusterError(InvariantViolation):
    def __init__(self, cluster_id: int, message: str = ""):
        super().__init__("DANGLING_CLUSTER", message or f"cluster {cluster_id} is not live")
        self.cluster_id = cluster_id
