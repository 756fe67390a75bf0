"""
Generation — turns ranked citations into a grounded answer.

This layer sits outside the ingestion/retrieval core: it only consumes
the ordered citations (document name, verbatim snippet, score).
"""
