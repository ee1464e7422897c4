"""Config file."""
from urllib.parse import quote_plus

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # PROJECT
    project_name: str = Field("nft-indexer", alias="PROJECT_NAME")

    # DATABASE
    postgres_user: str = Field("postgres", alias="POSTGRES_USER")
    postgres_password: SecretStr = Field(SecretStr("postgres"), alias="POSTGRES_PASSWORD")
    postgres_server: str = Field("localhost", alias="POSTGRES_SERVER")
    postgres_port: int = Field(5432, alias="POSTGRES_PORT")
    postgres_db: str = Field("nft_indexer", alias="POSTGRES_DB")
    database_url: str | None = None
    sync_database_url: str | None = None

    # CHAIN
    chain_id: int = Field(592, alias="CHAIN_ID")
    rpc_url: str = Field("http://localhost:8545", alias="RPC_URL")
    rpc_request_timeout: float = Field(30.0, alias="RPC_REQUEST_TIMEOUT")

    # CALL POLICY (every on-chain read and metadata fetch)
    call_timeout_seconds: float = Field(30.0, alias="CALL_TIMEOUT_SECONDS")
    call_attempts: int = Field(3, alias="CALL_ATTEMPTS")
    call_backoff_seconds: float = Field(0.5, alias="CALL_BACKOFF_SECONDS")

    # Reads below this height fail against the archive node.
    min_call_block_height: int = Field(1_789_333, alias="MIN_CALL_BLOCK_HEIGHT")

    # METADATA
    ipfs_gateway_host: str = Field("nftstorage.link", alias="IPFS_GATEWAY_HOST")

    # INDEXING
    block_batch_size: int = Field(500, alias="BLOCK_BATCH_SIZE")
    start_block: int = Field(0, alias="START_BLOCK")
    nft_contract_addresses: list[str] = Field(default_factory=list, alias="NFT_CONTRACT_ADDRESSES")
    tracked_balance_collections: list[str] = Field(
        default_factory=list,
        alias="TRACKED_BALANCE_COLLECTIONS",
    )
    image_backfill_interval: int = Field(1, alias="IMAGE_BACKFILL_INTERVAL")

    @field_validator("nft_contract_addresses", "tracked_balance_collections")
    @classmethod
    def lower_case_addresses(cls, value: list[str]) -> list[str]:
        return [addr.strip().lower() for addr in value if addr.strip()]

    @model_validator(mode="after")
    def assemble_db_urls(self) -> "Settings":
        user = quote_plus(self.postgres_user)
        password = quote_plus(self.postgres_password.get_secret_value())
        host = self.postgres_server
        port = self.postgres_port
        db = self.postgres_db

        if not self.database_url:
            self.database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

        if not self.sync_database_url:
            self.sync_database_url = f"postgresql://{user}:{password}@{host}:{port}/{db}"

        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings: Settings = Settings()
