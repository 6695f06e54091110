"""SensAI Eval review utilities."""

from utils.csv_ingest import (
    RowRejected,
    csv_to_conversations,
    normalize_trace_row,
    parse_csv_row,
)
from utils.conversation_store import (
    apply_annotation,
    build_queue,
    merge_batch,
    queue_annotation_rows,
)
from utils.blob_store import (
    LocalJsonStore,
    S3JsonStore,
    StorageError,
)
from utils.review_store import (
    IngestError,
    ReviewStore,
    store_from_config,
)
from utils.review_api import (
    ReviewApiClient,
    ReviewApiError,
)
from utils.chunked_upload import (
    UploadSummary,
    split_csv_into_chunks,
    summarize_upload,
    upload_csv_in_chunks,
)
from utils.data_helpers import (
    maybe_load_dotenv,
    iso_utc,
    csv_bytes_any,
    init_session_state,
)
from utils.config_utils import (
    resolve_app_password,
    resolve_reviewers,
    resolve_storage_config,
)

__all__ = [
    # CSV ingestion
    "RowRejected",
    "csv_to_conversations",
    "normalize_trace_row",
    "parse_csv_row",
    # Run and queue documents
    "apply_annotation",
    "build_queue",
    "merge_batch",
    "queue_annotation_rows",
    # Storage
    "LocalJsonStore",
    "S3JsonStore",
    "StorageError",
    "IngestError",
    "ReviewStore",
    "store_from_config",
    # HTTP client
    "ReviewApiClient",
    "ReviewApiError",
    # Chunked upload
    "UploadSummary",
    "split_csv_into_chunks",
    "summarize_upload",
    "upload_csv_in_chunks",
    # Data helpers
    "maybe_load_dotenv",
    "iso_utc",
    "csv_bytes_any",
    "init_session_state",
    # Config
    "resolve_app_password",
    "resolve_reviewers",
    "resolve_storage_config",
]
