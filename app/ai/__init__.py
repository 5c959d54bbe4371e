"""
Musubime
AI module — dashboard chat assistant.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, stub fallback)
    - rag: knowledge-file retrieval (chunking, embedding, MMR)
    - assistant: prompt assembly, canned replies, chat entry point
"""
