from mission_control.models.mission import Mission, MissionStatus
from mission_control.models.submission import Submission, Vote, SourceT

__all__ = ["Mission", "MissionStatus", "Submission", "Vote", "SourceT"]
