# medcross/core/context.py

import contextvars

correlation_id_ctx = contextvars.ContextVar("correlation_id", default=None)
requester_id_ctx = contextvars.ContextVar("requester_id", default=None)
chain_ctx = contextvars.ContextVar("chain", default=None)
