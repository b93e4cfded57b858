# Overview: Structured operational events routed to the application logger.

from __future__ import annotations

from flask import current_app

"""
posledger Event Sink (authoritative)

- One event per committed mutation; call emit() only after the unit commits.
- The core does not format events for humans: the message is
  "<event_type> key=value ..." and the same fields travel in the
  record's `extra` for structured handlers.
- No domain logic here.
"""


def emit(event_type: str, *, entity_type: str, entity_id: int | None, **fields) -> dict:
    payload = {
        "event_type": event_type,
        "entity_type": entity_type,
        "entity_id": entity_id,
    }
    payload.update(fields)

    rendered = " ".join(f"{key}={value}" for key, value in payload.items() if key != "event_type")
    current_app.logger.info("%s %s", event_type, rendered, extra={"event": payload})
    return payload
