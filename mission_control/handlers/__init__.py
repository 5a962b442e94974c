# mission_control/handlers/__init__.py
from __future__ import annotations
from aiogram import Dispatcher

from mission_control.handlers import commands as command_handlers
from mission_control.handlers import submissions as submission_handlers


def register(dp: Dispatcher) -> None:
    """
    Single registration point for all routers.
    Order matters: commands first, the catch-all text handler last.
    """
    dp.include_router(command_handlers.router)
    dp.include_router(submission_handlers.router)
