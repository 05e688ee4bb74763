"""Script decoding and column-name normalisation."""

from lineage_engine.parser.field_name import column_ref, normalize_field_name, qualify
from lineage_engine.parser.script_decoder import decode_job, decode_script, load_job_file

__all__ = [
    "column_ref",
    "decode_job",
    "decode_script",
    "load_job_file",
    "normalize_field_name",
    "qualify",
]
