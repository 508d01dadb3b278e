"""Error taxonomy for the call orchestrator."""


class VoiceAgentError(Exception):
    """Base class for orchestrator errors."""


class AgentNotFound(VoiceAgentError):
    """The dialled agent does not exist."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class InvalidTransition(VoiceAgentError):
    """A call session was asked to move to a phase it cannot reach."""


class PipelineError(VoiceAgentError):
    """A turn pipeline stage failed. Caught once at the top of the pipeline task."""

    stage = "pipeline"


class DownloadFailure(PipelineError):
    stage = "download"


class TranscriptionFailure(PipelineError):
    stage = "transcription"


class BackendTimeout(PipelineError):
    stage = "generation"


class BackendError(PipelineError):
    stage = "generation"


class SynthesisFailure(PipelineError):
    stage = "synthesis"


class CallControlFailure(PipelineError):
    stage = "call_control"
