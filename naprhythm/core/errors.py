"""Domain exceptions raised by the persistence and orchestration layers."""


class NapRhythmError(Exception):
    pass


class StorageError(NapRhythmError):
    """A persistence call failed; the stored state is unchanged."""


class RecomputeError(NapRhythmError):
    """Learner/schedule/tips recompute failed; the previous model is kept."""


class ProfileNotFoundError(NapRhythmError):
    def __init__(self, baby_id: str):
        super().__init__(f"Baby profile {baby_id} not found")
        self.baby_id = baby_id


class SessionNotFoundError(NapRhythmError):
    def __init__(self, session_id: str):
        super().__init__(f"Sleep session {session_id} not found")
        self.session_id = session_id


class TimerError(NapRhythmError):
    pass
