# Models package
from .centinela_log import build_centinela_table
