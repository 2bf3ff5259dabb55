from jobcal import create_app

app = create_app()

# Run with: gunicorn -w 2 wsgi:app
# Workers share no memory: queue writes are serialized per process by the queue
# lock and across processes by row locks plus the jobs.version_id check (409 on conflict).
# Set IS_SCHEDULER_WORKER=1 on exactly one instance to run the daily rollover job
