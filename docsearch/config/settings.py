
from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    chroma_host: str = "localhost"
    chroma_port: int = 8001
    chroma_collection: str = "document_chunks"
    chroma_request_timeout: float = 10.0

    embedding_model: str = "intfloat/multilingual-e5-base"
    embedding_dimension: int = 768

    # Query expansion via Ollama (OpenAI-compatible API)
    llm_expansion_enabled: bool = False
    llm_base_url: str = "http://localhost:11434/v1"
    llm_model: str = "qwen2.5:7b"
    llm_max_tokens: int = 256
    llm_temperature: float = 0.2

    search_default_limit: int = 5
    search_max_limit: int = 50
    search_max_query_length: int = 500
    search_vector_multiplier: int = 3
    search_keyword_multiplier: int = 2
    search_deadline: float = 15.0

    expansion_variants: int = 4
    expansion_cache_ttl: int = 900
    expansion_cache_size: int = 1000

    threshold_base: float = 0.3
    threshold_min: float = 0.2
    threshold_max: float = 0.8
    threshold_two_word_adjustment: float = 0.05
    threshold_long_query_adjustment: float = -0.10
    threshold_domain_adjustment: float = -0.05

    score_max_weight: float = 0.5
    score_avg_weight: float = 0.3
    score_position_weight: float = 0.2
    score_position_decay: float = 0.1
    score_position_floor: float = 0.3
    score_diversity_per_chunk: float = 0.05
    score_diversity_cap: float = 0.2

    hybrid_vector_weight: float = 0.7
    hybrid_keyword_weight: float = 0.3
    # "weighted" or "rrf"
    hybrid_fusion: str = "weighted"
    hybrid_rrf_k: int = 60
    hybrid_rrf_min_keyword_results: int = 3
    hybrid_fallback_vector_weight: float = 0.85
    hybrid_fallback_keyword_weight: float = 0.15
    hybrid_confidence_weighting: bool = True
    hybrid_confidence_boost: float = 1.2
    hybrid_confidence_penalty: float = 0.7
    hybrid_quality_gate: bool = False
    hybrid_min_final_score: float = 0.008
    hybrid_min_vector_only_final_score: float = 0.010
    hybrid_dynamic_threshold: bool = False
    hybrid_min_vector_with_text_threshold: float = 0.35
    hybrid_min_vector_only_threshold: float = 0.55

    funnel_threshold: float = 0.15
    funnel_candidate_multiplier: int = 20
    funnel_min_retention: float = 0.3
    funnel_term_boost: float = 0.1
    funnel_term_boost_cap: float = 0.3
    funnel_overlap_cutoff: float = 0.7
    funnel_key_terms: int = 10

    multi_query_per_call_limit: int = 5
    multi_query_concurrency: int = 3

    # External calls
    embed_timeout: float = 5.0
    vector_timeout: float = 5.0
    keyword_timeout: float = 5.0
    expansion_timeout: float = 8.0
    retry_attempts: int = 3
    retry_backoff_min: float = 0.2
    retry_backoff_max: float = 2.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
