"""Planning engines: risk, recommendation, replan and session logging."""

from kairos.core.recommend import WhatNowEngine
from kairos.core.replan import ReplanEngine
from kairos.core.result import Err, Ok, Result
from kairos.core.sessions import SessionEngine
from kairos.core.status import StatusEngine

__all__ = [
    "Err",
    "Ok",
    "ReplanEngine",
    "Result",
    "SessionEngine",
    "StatusEngine",
    "WhatNowEngine",
]
