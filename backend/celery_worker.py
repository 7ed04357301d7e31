#!/usr/bin/env python3
"""
Celery worker startup script for the Exam Integrity API

    python celery_worker.py worker --beat --loglevel=info
"""

from app.core.celery_app import celery_app

if __name__ == '__main__':
    celery_app.start()
