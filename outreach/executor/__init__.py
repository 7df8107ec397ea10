"""Job orchestration core.

Architecture (bottom-up):
- db: owned connection pool (Postgres or SQLite) and schema
- job_store: job documents, status transitions, append-only logs
- profile_store / artifact_store: profiles and normalized stage outputs
- themes: keyword themes and talking points from publication titles
- stages: the four pipeline stages
- dispatch: hand-off of a job to its next stage
- orchestrator: deploy, run a stage, record failures, dispatch
"""
