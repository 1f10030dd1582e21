"""Configuration management using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TOPICMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Community detection
    cluster_resolution: float = Field(
        default=1.0,
        description="Modularity resolution (higher = more, smaller clusters)"
    )
    cluster_seed: int = 42
    precomputed_min_coverage: float = Field(
        default=0.9,
        description="Fraction of current nodes a precomputed clustering must cover"
    )
    detect_periphery: bool = Field(
        default=False,
        description="Flag low-centrality clusters (betweenness, sampled)"
    )
    periphery_percentile: float = 0.25
    periphery_sample_size: int = 256

    # Label cache
    label_match_threshold: float = Field(
        default=0.85,
        description="Centroid cosine similarity below which a cluster is a cache miss"
    )
    label_exact_threshold: float = Field(
        default=0.95,
        description="Similarity at or above which a cached label is accepted without refinement"
    )
    label_cache_capacity: int = 500
    label_cache_key: str = "cluster-label-cache"
    label_cache_version: int = 1
    label_cache_path: str = "data/label_cache.json"

    # Label service (remote OpenAI-compatible endpoint)
    label_base_url: str = "http://localhost:11434/v1"
    label_model: str = "qwen3:8b"
    label_api_key: str = "ollama"
    label_timeout: float = 60.0
    label_max_concurrent: int = 4
    label_max_keywords: int = Field(
        default=15,
        description="Keywords per cluster sent in a generation prompt"
    )
    label_refine_max_keywords: int = Field(
        default=10,
        description="Keywords per side sent in a refinement prompt"
    )

    # Link force
    link_base_distance: float = 40.0
    link_distance_range: float = 150.0
    link_base_strength: float = 0.2
    link_strength_range: float = 0.8
    contrast_exponent: float = Field(
        default=1.0,
        description="Steepness of the similarity contrast curve (1.0 = linear)"
    )
    knn_strength: float = Field(
        default=1.5,
        description="Link strength multiplier for mutual-nearest-neighbor edges"
    )

    # Many-body, boundary and collision forces
    charge_strength: float = -200.0
    charge_distance_min: float = 1.0
    boundary_radius_factor: float = 2.0
    boundary_strength: float = 0.1
    boundary_extent_percentile: float = Field(
        default=0.9,
        description="Percentile of node distances used as the graph extent"
    )
    collision_radius: float = 20.0
    collision_strength: float = 1.0

    # Integration
    alpha_hot_target: float = 0.3
    alpha_decay: float = 0.01
    alpha_min: float = 0.001
    velocity_decay: float = Field(
        default=0.5,
        description="Fraction of velocity removed each tick"
    )
    initial_spread: float = 1000.0

    # Convergence
    max_velocity: float = 50.0
    min_ticks_before_check: int = 40
    velocity_threshold: float = Field(
        default=0.5,
        description="p95 node speed below which the layout is judged settled"
    )
    settle_consecutive_ticks: int = 3
    max_hot_ticks: int = Field(
        default=1500,
        description="Ticks after which cooling is forced even without settling"
    )

    # Zoom-dependent settling
    zoom_settling_enabled: bool = True
    zoom_scale_full_energy: float = 1.0
    zoom_scale_halt: float = 8.0
    zoom_min_alpha: float = 0.01
    zoom_max_alpha: float = 0.3
    zoom_min_velocity_decay: float = 0.5
    zoom_max_velocity_decay: float = 0.9

    # Auto-fit
    autofit_initial_delay: float = Field(
        default=0.5,
        description="Seconds after load before the first automatic fit"
    )
    autofit_initial_ticks: int = 60
    autofit_max_refits: int = 3
    autofit_node_change_ratio: float = Field(
        default=0.1,
        description="Relative node count change that counts as material"
    )
    autofit_padding: float = 40.0

    # Hover highlighting
    hover_screen_radius_fraction: float = Field(
        default=0.15,
        description="Hover radius as a fraction of the smaller viewport side"
    )
    hover_similarity_threshold: float = 0.7


def get_dev_settings() -> Settings:
    """Get development environment settings."""
    return Settings(
        label_max_concurrent=2,
        detect_periphery=True,
    )


def get_test_settings() -> Settings:
    """Get test environment settings.

    Small caches and fast cooling so headless runs settle quickly.
    """
    return Settings(
        label_cache_capacity=50,
        label_cache_path="data/label_cache_test.json",
        max_hot_ticks=400,
        zoom_settling_enabled=False,
        autofit_initial_delay=0.0,
    )


# Global settings instance
settings = Settings()
