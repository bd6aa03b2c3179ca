"""
llama-reply package.

Provides:
- A supervisor for a local llama.cpp CLI process (stream, stop, timeout)
- Response cleaning and validation for the raw CLI output
- A FastAPI front for callers that speak HTTP
"""
