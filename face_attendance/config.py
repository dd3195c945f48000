"""
Runtime configuration, read once from the environment.
"""
import os

# Storage
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./attendance.db")
DB_TIMEOUT_SECONDS = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))

# Matching
DESCRIPTOR_LENGTH = int(os.getenv("DESCRIPTOR_LENGTH", "128"))
MATCH_THRESHOLD = float(os.getenv("MATCH_THRESHOLD", "0.6"))
MATCH_STRATEGY = os.getenv("MATCH_STRATEGY", "reject-on-tie")
MULTI_DESCRIPTOR_ENROLLMENT = os.getenv("MULTI_DESCRIPTOR_ENROLLMENT", "true").lower() in ("1", "true", "yes")

# Attendance days are calendar dates in this timezone
ATTENDANCE_TIMEZONE = os.getenv("ATTENDANCE_TIMEZONE", "UTC")

# Logging
LOG_FILE = os.getenv("LOG_FILE", "request_performance.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
