"""Service modules - Business logic layer"""
from .instance_service import InstanceService, build_instance_service
from .seed_service import seed_sample_data, SAMPLE_WORKFLOW_ID

__all__ = [
    "InstanceService",
    "build_instance_service",
    "seed_sample_data",
    "SAMPLE_WORKFLOW_ID",
]
