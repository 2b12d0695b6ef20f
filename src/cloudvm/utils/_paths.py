from pathlib import Path

import platformdirs


def get_cloudvm_log_dir() -> Path:
    """Get the per-user log directory for cloudvm."""
    return platformdirs.user_log_path("cloudvm")


def get_cloudvm_log_file() -> Path:
    """Get the path to the default log file inside the log directory."""
    return get_cloudvm_log_dir() / "cloudvm.log"
