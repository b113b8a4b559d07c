from .tracker import LineageTracker, make_entry, trace_downstream, trace_upstream

__all__ = ["LineageTracker", "make_entry", "trace_downstream", "trace_upstream"]
