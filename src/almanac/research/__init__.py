"""
Almanac Research Core - Scheduled deep-research jobs.

Modules:
- cron / scheduler: one cron timer per enabled research config
- queue: single-flight FIFO with duplicate suppression
- engine: provider submission, polling, retries, cost accounting
- trust: Wilson-score reputation for content sources
- orchestrator: builds and owns all of the above

The stores import the models defined here, so this package does not
re-export its submodules.

Usage:
    from almanac.research.orchestrator import Orchestrator

    orchestrator = Orchestrator(AlmanacConfig.load())
    await orchestrator.start()
    orchestrator.run_now("news-tech")
"""
