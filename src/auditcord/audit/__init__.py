"""
Audit event pipeline for Auditcord.

This package turns raw gateway change events into structured log records:

- **normalizer.py**: Projects snapshots and actors onto a flat mapping of
  scalar fields, dropping caller-excluded and non-scalar fields.

- **diff_engine.py**: Runs the nickname, role and username detectors in a
  fixed order and returns one typed delta per change category.

- **audit_correlator.py**: Searches the guild audit trail for the entry that
  explains a change, retrying within a bounded timeout and degrading to the
  unknown actor on any failure.

- **suppression.py**: One-shot, TTL-bounded ignore entries registered before
  the bot's own actions, and the gate that consumes them.

- **log_emitter.py**: Fans finished records out to subscribed sinks without
  letting a failing sink affect the others.

- **event_pipeline.py**: Orchestrates all of the above per event, serializing
  events of the same guild.
"""
