from __future__ import annotations

import importlib

ulid_module = importlib.import_module("ulid")


def new_tenant_id() -> str:
    return f"spc_{ulid_module.new().str}"


def new_content_id() -> str:
    return f"cnt_{ulid_module.new().str}"


def new_binding_id() -> str:
    return f"chb_{ulid_module.new().str}"


def new_outbox_job_id() -> str:
    return f"job_{ulid_module.new().str}"


def new_message_id() -> str:
    return f"msg_{ulid_module.new().str}"


def new_comment_id() -> str:
    return f"cmt_{ulid_module.new().str}"


def new_inbox_item_id() -> str:
    return f"inb_{ulid_module.new().str}"
