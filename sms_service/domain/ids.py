from __future__ import annotations

import importlib

ulid_module = importlib.import_module("ulid")


def new_message_public_id() -> str:
    return f"msg_{ulid_module.new().str}"


def new_dispatch_job_id() -> str:
    return f"job_{ulid_module.new().str}"
