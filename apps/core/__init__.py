"""
Shared building blocks with no models of their own: the TaskService facade
over the local, Celery and SQS backends, and the EN/FR content helpers.
"""
