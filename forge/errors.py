from typing import Optional

class BuildPipelineError(RuntimeError):
    """A failure that ends a build job as failed."""

class MaterializeError(BuildPipelineError):
    pass

class BuildFailedError(BuildPipelineError):
    def __init__(self, message: str, timed_out: bool = False, exit_code: Optional[int] = None):
        super().__init__(message)
        self.timed_out = timed_out
        self.exit_code = exit_code

class ArtifactMissingError(BuildPipelineError):
    pass
