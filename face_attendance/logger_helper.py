import gzip
import logging
import os
import shutil
import time
from logging.handlers import TimedRotatingFileHandler

from fastapi import Request

LOG_MAX_SIZE = 20 * 1024 * 1024  # 20 MB
LOG_BACKUP_COUNT = 5             # Keep last 5 log files
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CompressingRotatingHandler(TimedRotatingFileHandler):
    """
    Weekly rotation (Monday at midnight) that also rolls over once the file
    reaches max_bytes. Rotated files are gzip-compressed.
    """

    def __init__(self, filename, max_bytes=LOG_MAX_SIZE, backup_count=LOG_BACKUP_COUNT):
        super().__init__(filename, when="W0", backupCount=backup_count, encoding="utf-8")
        self.max_bytes = max_bytes
        self.namer = lambda name: f"{name}.gz"
        self.rotator = self._compress

    def shouldRollover(self, record):
        if super().shouldRollover(record):
            return True
        return os.path.exists(self.baseFilename) and os.path.getsize(self.baseFilename) >= self.max_bytes

    @staticmethod
    def _compress(source, dest):
        with open(source, "rb") as f_in, gzip.open(dest, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
        os.remove(source)


def setup_logger(log_file, level="INFO"):
    """
    Configure the package logger and the request logger.

    Both write to a rotating, compressing file and to stderr.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = CompressingRotatingHandler(log_file)
    file_handler.setFormatter(formatter)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    for name in ("face_attendance", "performance_logger"):
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if not logger.handlers:
            logger.addHandler(file_handler)
            logger.addHandler(console_handler)
        logger.propagate = False

    return logging.getLogger("performance_logger")


def create_logging_middleware(app, logger):
    """
    Adds a middleware logging request timing, IP and status.

    Bodies are not logged: they carry biometric descriptors.
    """
    @app.middleware("http")
    async def log_request_response_time(request: Request, call_next):
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "-"

        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        logger.info(
            "IP=%s | %s %s | Status=%s | Time=%.4fs",
            client_ip, request.method, request.url.path, response.status_code, process_time,
        )
        response.headers["X-Process-Time"] = str(round(process_time, 4))
        return response

    return app
