# Middleware package
from .centinela import CentinelaMiddleware, log_exchange
from .cors import CorsMiddleware
from .csrf import CsrfMiddleware
from .session import SessionMiddleware
