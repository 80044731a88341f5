"""Sequential stage composition for one record."""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from msiprocessor.services.processor.classifier import FileType
from msiprocessor.services.processor.models import RecordStage, UploadRecord

logger = logging.getLogger(__name__)

StageFn = Callable[[UploadRecord], Awaitable[UploadRecord]]
Finalizer = Callable[[UploadRecord], Awaitable[None]]


@dataclass(frozen=True)
class PipelineStage:
    """A named async step that enriches a record and returns it."""

    name: str
    run: StageFn


class RecordPipeline:
    """Runs stages in order; the first failure stops the record.

    Finalizers run after the stages settle, whether they succeeded or not.
    """

    def __init__(
        self,
        file_type: FileType,
        stages: Sequence[PipelineStage],
        finalizers: Sequence[Finalizer] = (),
    ) -> None:
        self.file_type = file_type
        self.stages = tuple(stages)
        self.finalizers = tuple(finalizers)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def run(self, record: UploadRecord) -> UploadRecord:
        """Run every stage against the record.

        Raises:
            Exception: Whatever the failing stage raised; record.stage is FAILED
                and record.failed_stage names the stage
        """
        current = None
        try:
            for stage in self.stages:
                current = stage.name
                logger.debug(
                    f"Running stage {stage.name}",
                    extra={"object_key": record.key, "file_type": self.file_type.value}
                )
                record = await stage.run(record)
        except Exception:
            record.failed_stage = current
            record.stage = RecordStage.FAILED
            raise
        finally:
            for finalizer in self.finalizers:
                await finalizer(record)
        return record
