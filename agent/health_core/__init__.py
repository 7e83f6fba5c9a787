"""
health_core — Endpoint Health Agent: synchronisation & health-state engine
==========================================================================
Architecture: one tick thread drives the pipeline; slow probes run on
their own daemon threads and report back through a queue.

  constants.py    → Version, intervals, thresholds, declared signal tables
  config.py       → Paths, logging setup, safe_print
  logsink.py      → LogSink (retrying, rotating log file handler)
  state.py        → PersistedState + StateStore (backfill, atomic save)
  content.py      → ContentSnapshot / FetchResult model + compiled default
  http_client.py  → HTTP session with retry/pooling + SSL fix
  fetcher.py      → ContentFetcher (TTL cache, HTTP / UNC / local, fallback)
  changes.py      → Change detection per content section
  signals.py      → ProbeResult, run_probe, SignalAggregator
  certificate.py  → Certificate expiry evaluation
  health.py       → HealthPublisher (Healthy / Warning + reasons)
  background.py   → BackgroundProbe (at most one outstanding run)
  platform_win.py → Windows probes, single instance
  engine.py       → EngineContext + HealthEngine (tick / run)
  runner.py       → main() + auto-restart wrapper
"""
