"""Bedrock-backed fact extractor.

Each collaborator call is one ``ExtractionTask``: a named request with
instructions, a body, and the model tier that answers it. The extractor
returns the JSON object the model produced as-is; validation and per-fact
fallback live in ``surveydoc.extraction.service``.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
import time
from typing import Any, Literal

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from surveydoc.config import Settings
from surveydoc.errors import ExtractorRuntimeError, MalformedExtractorOutput

logger = logging.getLogger("surveydoc.extractor")

_FACT_KEYS = (
    "has_water_sampling, has_sediment_sampling, has_air_sampling, has_physical_impacts, "
    "has_building_survey, has_radon_flux, has_gas_geochemistry, has_surface_water, has_ground_water"
)
_JSON_ONLY = "Верни строго JSON без пояснений и markdown."
_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)
_DECODER = json.JSONDecoder()


@dataclass(frozen=True)
class ExtractionTask:
    name: str
    instructions: str
    body: str
    tier: Literal["pro", "lite"] = "pro"


def response_text(response: Any) -> str:
    """Concatenated text blocks of a ``converse`` response."""
    blocks = response.get("output", {}).get("message", {}).get("content", [])
    text = "\n".join(block["text"] for block in blocks if isinstance(block.get("text"), str)).strip()
    if not text:
        raise MalformedExtractorOutput("model returned no text")
    return text


def parse_json_object(text: str) -> dict[str, Any]:
    """The first JSON object in ``text``, inside a code fence or surrounded by prose."""
    fenced = _FENCE.search(text)
    candidate = (fenced.group(1) if fenced else text).strip()
    if candidate.startswith("["):
        raise MalformedExtractorOutput("model returned a JSON array, expected an object")
    start = candidate.find("{")
    if start == -1:
        raise MalformedExtractorOutput("model output contains no JSON object")
    try:
        payload, _ = _DECODER.raw_decode(candidate, start)
    except json.JSONDecodeError as exc:
        raise MalformedExtractorOutput(f"malformed JSON in model output: {exc.msg}") from exc
    return payload


class BedrockFactExtractor:
    def __init__(self, settings: Settings, client: Any | None = None) -> None:
        self._settings = settings
        self._client = client or boto3.client("bedrock-runtime", region_name=settings.aws_region)

    def extract_order_facts(self, order_text: str, *, object_name: str = "") -> dict[str, object]:
        return self.run(
            ExtractionTask(
                name="order_facts",
                instructions=f"Ты эксперт по поручениям на инженерно-экологические изыскания. {_JSON_ONLY}",
                body=(
                    f"Верни JSON-объект с булевыми ключами: {_FACT_KEYS}. "
                    "Ставь true только если работа явно требуется по поручению.\n\n"
                    f"Наименование объекта: {object_name or '(нет)'}\n\n"
                    f"Поручение:\n{self._clip(order_text)}"
                ),
            )
        )

    def classify_object(self, object_name: str) -> dict[str, object]:
        return self.run(
            ExtractionTask(
                name="object_type",
                instructions=f"Ты определяешь тип строительного объекта по его наименованию. {_JSON_ONLY}",
                body=(
                    "Верни JSON-объект с ключами is_linear_communication (сети связи, ВОЛС, кабель связи, "
                    "линии связи, телекоммуникации) и is_road_object (дорога, путепровод, тоннель, эстакада, "
                    "мост, развязка, переезд).\n\n"
                    f"Наименование объекта: \"{object_name}\""
                ),
                tier="lite",
            )
        )

    def extract_layers(self, order_text: str) -> dict[str, object]:
        return self.run(
            ExtractionTask(
                name="layers",
                instructions=f"Ты извлекаешь из поручения сведения об отборе проб грунта по слоям. {_JSON_ONLY}",
                body=(
                    "Верни JSON-объект с ключами layers, surface_platform_count, total_borehole_count. "
                    "layers: массив объектов с ключами depth_from, depth_to (метры), sample_count и "
                    "platform_numbers (номера площадок, если указаны в скобках).\n\n"
                    f"Поручение:\n{self._clip(order_text)}"
                ),
            )
        )

    def match_work_rows(self, order_text: str, work_rows: list[str]) -> dict[str, object]:
        rows_list = "\n".join(f"{index}. {title.strip()}" for index, title in enumerate(work_rows))
        return self.run(
            ExtractionTask(
                name="work_rows",
                instructions=(
                    "Ты эксперт по инженерно-экологическим изысканиям. Выбери строки таблицы работ, "
                    "которые требуются по поручению. Будь консервативен: без уверенного совпадения строку "
                    f"не включай. {_JSON_ONLY}"
                ),
                body=(
                    "Верни JSON-объект с ключом keep_work_row_indexes (массив индексов строк).\n\n"
                    f"Строки таблицы:\n{rows_list}\n\n"
                    f"Поручение:\n{self._clip(order_text)}"
                ),
            )
        )

    def extract_service_quantities(self, order_text: str, candidate_lines: list[str]) -> dict[str, object]:
        lines = "\n".join(f"- {line}" for line in candidate_lines) or "(не найдено)"
        return self.run(
            ExtractionTask(
                name="service_quantities",
                instructions=(
                    "Ты эксперт по поручениям на ИЭИ. Верни количество проб, точек, гектаров или измерений "
                    f"по строкам прейскуранта. Если стоит \"-\", количества нет. Не выдумывай. {_JSON_ONLY}"
                ),
                body=(
                    "Верни JSON-объект с ключом by_row: номер строки прейскуранта -> количество. "
                    "Строки прейскуранта: 16 гамма-съемка (га), 17 ППР (точка), 20 почва (проба), "
                    "21 токсичность почв, 22 микробиология почв, 23 личинки и куколки мух, "
                    "28 поверхностные воды, 29 донные отложения, 30 подземные воды. "
                    "Если числовых столбцов два, бери правый.\n\n"
                    f"Табличные строки поручения (name | unit | colA | colB):\n{lines}\n\n"
                    f"Поручение:\n{self._clip(order_text)}"
                ),
            )
        )

    def run(self, task: ExtractionTask) -> dict[str, object]:
        model_id = self._settings.bedrock_lite_model_id if task.tier == "lite" else self._settings.bedrock_model_id
        if not model_id:
            raise ExtractorRuntimeError(f"no Bedrock model configured for '{task.name}'")

        started = time.perf_counter()
        try:
            response = self._client.converse(
                modelId=model_id,
                system=[{"text": task.instructions}],
                messages=[{"role": "user", "content": [{"text": task.body}]}],
                inferenceConfig={
                    "temperature": self._settings.agent_temperature,
                    "maxTokens": self._settings.agent_max_tokens,
                },
            )
        except (BotoCoreError, ClientError, OSError) as exc:
            raise ExtractorRuntimeError(f"{task.name}: Bedrock call to '{model_id}' failed: {exc}") from exc

        payload = parse_json_object(response_text(response))
        logger.info(
            "extraction_task_completed",
            extra={
                "event": "extraction_task_completed",
                "task": task.name,
                "model_id": model_id,
                "body_chars": len(task.body),
                "keys": sorted(payload),
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return payload

    def _clip(self, text: str) -> str:
        return str(text or "").strip()[: self._settings.extraction_max_source_chars]
