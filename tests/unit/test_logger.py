import logging

from statement_ingest.logging.logger import Log


class TestLogConfigure:
    def test_single_handler_and_quiet_clients(self) -> None:
        Log.configure("info")
        Log.configure("info")

        logger = logging.getLogger("statement_ingest")
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING
