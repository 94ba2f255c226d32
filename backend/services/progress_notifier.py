# Query progress reporting
# services/progress_notifier.py
"""Progress notification for in-flight queries"""

from typing import List
import structlog
from models.pipeline import ProgressUpdate, QueryStage
from services.interfaces import ProgressNotifier


logger = structlog.get_logger()


class StructlogProgressNotifier(ProgressNotifier):
    """Default observer: writes every update to the structured log"""

    def __init__(self):
        self.logger = logger.bind(service="ProgressNotifier")

    async def notify_progress(self, user_id: str, query_id: str, stage: str, message: str, percent: int):
        self.logger.info("Query progress",
                       user_id=user_id,
                       query_id=query_id,
                       stage=stage,
                       message=message,
                       percent=percent)


class ProgressReporter:
    """
    Per-query wrapper around a notifier.
    Percentages never go down: a lower value is raised to the highest one sent.
    Notifier errors are logged and dropped.
    """

    def __init__(self, notifier: ProgressNotifier, user_id: str, query_id: str):
        self.notifier = notifier
        self.user_id = user_id
        self.query_id = query_id
        self.highest = 0
        self.history: List[ProgressUpdate] = []
        self.logger = logger.bind(component="ProgressReporter", query_id=query_id)

    async def report(self, stage: QueryStage, message: str, percent: int):
        percent = max(self.highest, min(100, percent))
        self.highest = percent

        update = ProgressUpdate(
            user_id=self.user_id,
            query_id=self.query_id,
            stage=stage,
            message=message,
            percent=percent
        )
        self.history.append(update)

        try:
            await self.notifier.notify_progress(self.user_id, self.query_id, stage.value, message, percent)
        except Exception as e:
            self.logger.warning("Progress notification failed", stage=stage.value, error=str(e))
