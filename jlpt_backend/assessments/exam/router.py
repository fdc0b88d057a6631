"""
Exam Router

This module exports the router from the exam_controller module.
"""

from jlpt_backend.assessments.exam.exam_controller import router
from jlpt_backend.common.logger import app_logger

logger = app_logger.getChild("exam_router")
logger.debug(f"Exam router loaded with {len(router.routes)} routes")

__all__ = ['router']
