from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Survey Program Assembler"
    app_env: str = "development"
    log_level: str = "INFO"

    # heuristic|bedrock. The heuristic backend never calls a model.
    extractor_backend: str = "heuristic"
    aws_region: str = "us-east-1"
    bedrock_model_id: str = "amazon.nova-pro-v1:0"
    bedrock_lite_model_id: str = "amazon.nova-lite-v1:0"
    agent_temperature: float = 0.0
    agent_max_tokens: int = 2048
    extraction_max_source_chars: int = 12000
    extraction_max_workers: int = 4

    default_site_area_ha: float = 0.77
    assumed_corridor_width_m: float = 20.0
    observation_point_area_ha: float = 0.5
    min_route_length_km: float = 0.1

    document_part_name: str = "word/document.xml"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def uses_model_extractor(self) -> bool:
        return self.extractor_backend.strip().lower() == "bedrock"


settings = Settings()
