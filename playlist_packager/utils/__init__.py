from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
    log_performance,
    get_current_log_file
)
from .helpers import (
    sanitize_filename,
    slugify,
    random_token,
    format_duration,
    format_duration_hms,
    format_file_size,
    content_hash,
    utc_now,
    get_current_timestamp,
    parse_timestamp,
    format_timestamp,
    compact_timestamp,
    ensure_directory,
    write_json_atomic,
    read_json
)

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'OperationLogger',
    'create_operation_logger',
    'log_performance',
    'get_current_log_file',

    # Helper exports
    'sanitize_filename',
    'slugify',
    'random_token',
    'format_duration',
    'format_duration_hms',
    'format_file_size',
    'content_hash',
    'utc_now',
    'get_current_timestamp',
    'parse_timestamp',
    'format_timestamp',
    'compact_timestamp',
    'ensure_directory',
    'write_json_atomic',
    'read_json',
]
