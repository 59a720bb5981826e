"""
Async entry points for the tree inventory workflow.

Each operation awaits only at I/O or inference boundaries (image reads,
model runs, crop writes, store statements, HTTP calls), which run in worker
threads via `asyncio.to_thread`. A caller that stops awaiting does not
interrupt a write that has already started.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from tree_kit.postprocess import DecodeConfig
from tree_kit.runtime import TreeDetectionPipeline, load_pipeline
from tree_kit.types import NormalizedBox

from .assemble import assemble_tree_records, selected_detections
from .classifier import ClassificationClient, extract_taxon_name, format_classification_result
from .config import DEFAULT_DEFECT_CONF, InventoryConfig
from .defects import DefectDetectionClient, DefectDetector, process_defects_for_tree
from .errors import RecordNotFoundError, ValidationError
from .records import DefectEntity, TreeEntity
from .reporting import today_date_str, write_inventory_csv, write_inventory_report
from .store import TreeStore

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


class TreeInventoryService:
    def __init__(
        self,
        pipeline: TreeDetectionPipeline,
        store: TreeStore,
        *,
        crop_dir: PathLike,
        classifier: Optional[ClassificationClient] = None,
        defect_detector: Optional[DefectDetector] = None,
        defect_conf_threshold: float = DEFAULT_DEFECT_CONF,
    ) -> None:
        self.pipeline = pipeline
        self.store = store
        self.crop_dir = Path(crop_dir)
        self.classifier = classifier
        self.defect_detector = defect_detector
        self.defect_conf_threshold = defect_conf_threshold

    # ------------------------------------------------------------------ #
    # Detection and save
    # ------------------------------------------------------------------ #
    async def detect(self, image_path: PathLike) -> List[NormalizedBox]:
        """
        Run one detection pass. Any preprocessing or decoding error aborts the
        run and nothing partial is returned.
        """

        tensor = await asyncio.to_thread(self.pipeline.preprocess, image_path)
        preds = await asyncio.to_thread(self.pipeline.infer, tensor)
        boxes = self.pipeline.decode(preds)
        logger.info("Detected %d tree(s) in %s", len(boxes), image_path)
        return boxes

    async def save_selected(
        self,
        image_path: PathLike,
        detections: Sequence[NormalizedBox],
        *,
        captured_at: Optional[str] = None,
    ) -> List[TreeEntity]:
        if not selected_detections(detections):
            raise ValidationError("at least one detection must be selected to save")

        trees = await asyncio.to_thread(
            assemble_tree_records,
            detections,
            image_path,
            crop_dir=self.crop_dir,
            captured_at=captured_at,
        )
        await asyncio.to_thread(self.store.insert_trees, trees)
        logger.info("Saved %d tree(s) from %s", len(trees), image_path)
        return trees

    # ------------------------------------------------------------------ #
    # Records
    # ------------------------------------------------------------------ #
    async def list_trees(self) -> List[TreeEntity]:
        return await asyncio.to_thread(self.store.get_all_trees)

    async def get_tree(self, tree_id: int) -> TreeEntity:
        tree = await asyncio.to_thread(self.store.get_tree, tree_id)
        if tree is None:
            raise RecordNotFoundError(tree_id)
        return tree

    async def update_description(self, tree_id: int, description: str) -> None:
        if not await asyncio.to_thread(self.store.update_tree, tree_id, description=description):
            raise RecordNotFoundError(tree_id)

    async def add_additional_image(self, tree_id: int, image_path: PathLike) -> List[str]:
        images = await asyncio.to_thread(self.store.append_additional_image, tree_id, str(image_path))
        if images is None:
            raise RecordNotFoundError(tree_id)
        return images

    async def remove_additional_image(self, tree_id: int, image_path: PathLike) -> List[str]:
        images = await asyncio.to_thread(self.store.remove_additional_image, tree_id, str(image_path))
        if images is None:
            raise RecordNotFoundError(tree_id)
        return images

    async def delete_tree(self, tree_id: int) -> None:
        if not await asyncio.to_thread(self.store.delete_tree, tree_id):
            raise RecordNotFoundError(tree_id)

    async def clear_all(self) -> int:
        return await asyncio.to_thread(self.store.clear_all_trees)

    # ------------------------------------------------------------------ #
    # Remote services
    # ------------------------------------------------------------------ #
    async def classify_tree(self, tree_id: int) -> TreeEntity:
        """
        Classify the tree crop and store the formatted result as description and the label as taxon.
        """

        if self.classifier is None:
            raise RuntimeError("No classification service configured")
        tree = await self.get_tree(tree_id)
        if not tree.crop_path:
            raise ValidationError("No tree crop image available for classification.")

        result = await asyncio.to_thread(self.classifier.classify, tree.crop_path)
        description = format_classification_result(result)
        taxon = extract_taxon_name(result)
        await asyncio.to_thread(self.store.update_tree, tree_id, description=description, taxon_name=taxon)

        tree.description = description
        if taxon:
            tree.taxon_name = taxon
        return tree

    async def refresh_defects(self, tree_id: int) -> List[DefectEntity]:
        """
        Run defect detection on the tree's images and replace its stored defects with the new batch.
        """

        if self.defect_detector is None:
            raise RuntimeError("No defect detection service configured")
        tree = await self.get_tree(tree_id)
        defects = await asyncio.to_thread(
            process_defects_for_tree,
            tree,
            self.defect_detector,
            crop_dir=self.crop_dir,
            conf_threshold=self.defect_conf_threshold,
        )
        stored = await asyncio.to_thread(self.store.replace_defects, tree_id, defects)
        logger.info("Stored %d defect(s) for tree %d", len(stored), tree_id)
        return stored

    async def get_defects(self, tree_id: int) -> List[DefectEntity]:
        return await asyncio.to_thread(self.store.get_defects_by_tree_id, tree_id)

    # ------------------------------------------------------------------ #
    # Export
    # ------------------------------------------------------------------ #
    async def export_report(
        self,
        out_dir: PathLike,
        *,
        tree_ids: Optional[Sequence[int]] = None,
        date: Optional[str] = None,
    ) -> Dict[str, Path]:
        trees = await self.list_trees()
        if tree_ids is not None:
            wanted = set(tree_ids)
            trees = [t for t in trees if t.id in wanted]
        if not trees:
            raise ValidationError("no trees to export")

        defects_by_tree: Dict[int, List[DefectEntity]] = {}
        for t in trees:
            defects_by_tree[t.id] = await self.get_defects(t.id)

        date = date or today_date_str()
        out = Path(out_dir)
        json_path = await asyncio.to_thread(
            write_inventory_report, out_dir=out, date=date, trees=trees, defects_by_tree=defects_by_tree
        )
        csv_path = await asyncio.to_thread(
            write_inventory_csv, out_dir=out, date=date, trees=trees, defects_by_tree=defects_by_tree
        )
        return {"json": json_path, "csv": csv_path}


def build_service(cfg: InventoryConfig, *, pipeline: Optional[TreeDetectionPipeline] = None) -> TreeInventoryService:
    """
    Wire the service from configuration. The model is loaded here, once.
    """

    if pipeline is None:
        pipeline = load_pipeline(
            cfg.model_path,
            decode_cfg=DecodeConfig(conf_threshold=cfg.tree_conf_threshold, input_size=cfg.input_size),
            onnx_providers=cfg.onnx_providers,
        )
    store = TreeStore(cfg.database_path)
    store.initialize()

    classifier = ClassificationClient(cfg.classify_url, timeout_s=cfg.http_timeout_s) if cfg.classify_url else None
    detector = (
        DefectDetectionClient(cfg.defect_detect_url, timeout_s=cfg.http_timeout_s) if cfg.defect_detect_url else None
    )
    return TreeInventoryService(
        pipeline,
        store,
        crop_dir=cfg.crop_dir,
        classifier=classifier,
        defect_detector=detector,
        defect_conf_threshold=cfg.defect_conf_threshold,
    )
