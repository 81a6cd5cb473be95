"""
Matching services.

The pure grouping algorithm is re-exported here; the orchestration services
live in matching_service and lifecycle_service.
"""

from app_circles.matching.services.age_model import AgeModel
from app_circles.matching.services.bucketizer import Bucketizer, BucketKey
from app_circles.matching.services.partitioner import GroupPartitioner, CandidateGroup, PartitionStrategy

__all__ = [
    "AgeModel",
    "Bucketizer",
    "BucketKey",
    "GroupPartitioner",
    "CandidateGroup",
    "PartitionStrategy",
]
