"""
Job Calendar Brain Module
Flask Blueprint for the scheduling services and routes.

This module provides routes for computing the crew calendar from the job
store, reordering the sold-job queue, editing per-job scheduling inputs
(hold date, weekend permissions, labor days) and managing block-outs.
"""
from flask import Blueprint

brain_bp = Blueprint("brain", __name__)

from jobcal.brain.scheduling import routes
