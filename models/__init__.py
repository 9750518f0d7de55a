"""Data models for the Mixed Content Sequencer"""

from models.asset import ASSET_KINDS, Asset
from models.generation import BatchEvent, BatchFailure, BatchRun, GenerationRequest, ReferenceAsset
from models.order import CustomOrder, FinalSequence, SequenceEntry, StoredSequence
from models.producer import GeneratedVideo, ImageSet, ProducerSnapshot

__all__ = [
    "ASSET_KINDS",
    "Asset",
    "BatchEvent",
    "BatchFailure",
    "BatchRun",
    "CustomOrder",
    "FinalSequence",
    "GeneratedVideo",
    "GenerationRequest",
    "ImageSet",
    "ProducerSnapshot",
    "ReferenceAsset",
    "SequenceEntry",
    "StoredSequence",
]
