# PATH: jobs/__init__.py
"""
Operator entry points.

    monirouter ...            # console script
    python -m jobs.run_router # same CLI
"""
