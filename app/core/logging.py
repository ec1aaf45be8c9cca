from __future__ import annotations

"""Shared logger for the admin backend.

Everything logs through the ``uvicorn.error`` logger so cascade, restore and
purge messages show up in the server output next to request logs. The
operational scripts call ``logging.basicConfig`` themselves.
"""

import logging

logger = logging.getLogger("uvicorn.error")
