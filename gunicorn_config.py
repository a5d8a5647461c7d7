"""Gunicorn configuration for the placement API."""
import sys

# Gunicorn config variables
bind = "0.0.0.0:8080"
workers = 2
timeout = 120
worker_class = "sync"
preload_app = False  # each worker loads the scenario itself

def post_worker_init(worker):
    """Called just after a worker has initialized the application."""
    app = getattr(worker, "wsgi", None)
    if app and hasattr(app, 'config'):
        scenario = app.config.get('fogplace_scenario')
        if scenario is not None:
            print(
                f"[Worker {worker.pid}] Scenario loaded: {len(scenario.topology.nodes())} nodes, "
                f"{len(scenario.requests)} requests",
                file=sys.stderr, flush=True,
            )
        else:
            print(f"[Worker {worker.pid}] No default scenario loaded", file=sys.stderr, flush=True)
    else:
        print(f"[Worker {worker.pid}] WARNING: App or config not found", file=sys.stderr, flush=True)
