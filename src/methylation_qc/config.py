from typing import Tuple

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    environment: str = "development"

    # Quantity stratification
    low_quantile: float = 0.33
    high_quantile: float = 0.67

    # Sample and probe QC
    intensity_cutoff: float = 10.5
    probe_alpha: float = 0.01
    sample_alpha: float = 0.05

    # Sample sheet columns
    id_col: str = "sample"
    group_col: str = "group"
    metric_col: str = "metric"

    save_formats: Tuple[str, ...] = ("png", "pdf")

    class Config:
        env_file = ".env"
        env_prefix = "METHYLATION_QC_"


settings = Settings()
