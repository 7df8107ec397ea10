"""Outreach Agents - job orchestration service.

Runs a four-stage pipeline per job:
- Stage 1: CV analysis
- Stage 2: Prospect discovery
- Stage 3: Publication verification
- Stage 4: Email drafting

Each stage persists its artifact onto a shared job document and hands
off to the next stage through a dispatcher.
"""

__version__ = "0.1.0"
