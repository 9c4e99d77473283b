"""Error types for the legislator site worker."""


class WorkerError(Exception):
    """Base class for worker errors."""


class UpstreamError(WorkerError):
    """An external source was unreachable or returned an unusable payload."""

    def __init__(self, source: str, message: str, status_code: int | None = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


class ToolInputError(WorkerError):
    """Tool arguments supplied by the model failed validation."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"Invalid input for {tool_name}: {message}")


class UnknownToolError(WorkerError):
    """The model asked for a tool outside the registered set."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")
