"""
Benchmark core.

Modules:
- dataset: tier sizing, aggregate ids, cyclic sampler
- run_mode: operation classification and filtering
- optional_modules: optional driver loading
- seeding: idempotent, concurrency-bounded dataset seeding
- bench: sequential measurement engine
- validation / summary: result checks and text reports
- suite: per-backend tier loop
"""
