"""Presentation of monitor notices on the agent station."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class NoticePresenter(ABC):
    @abstractmethod
    def show(self, text: str) -> None:
        """Show notice text to the person at this station."""


class LogNoticePresenter(NoticePresenter):
    def show(self, text: str) -> None:
        logger.warning("Notice from monitor: %s", text)
