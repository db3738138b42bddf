"""Prompt templates for title translation and summarization."""

from __future__ import annotations

import json

TITLE_BATCH_PROMPT = """Translate the following HackerNews titles to Chinese. \
Return ONLY a JSON array of translated titles in the same order.

Input JSON array:
{payload}

Rules:
1. PRESERVE technical terms (TypeScript, JavaScript, GitHub, API, AWS, React, etc.)
2. Output ONLY the JSON array, no explanations or markdown code blocks
3. Maintain exact order
4. Each translation should be accurate and natural Chinese
5. Do NOT add any numbering or prefix like "Translation 1:", just the translated text"""

TITLE_SINGLE_PROMPT = """Translate this HackerNews title to Chinese.

1. PRESERVE technical terms in their original English form or use standard Chinese \
abbreviations (programming languages, cloud services, acronyms, product names).
2. Only translate natural language portions.
3. Maintain readability for technical Chinese audiences.

Return ONLY the translated title, with no notes, explanations or prefixes.

Title to translate: {text}"""

DESCRIPTION_SINGLE_PROMPT = (
    "Translate this article description to Chinese. "
    "Only output the translation, no explanations: {text}"
)

CONTENT_BATCH_PROMPT = """请用中文总结以下文章内容。返回一个 JSON 数组，每个元素是对应文章的摘要。

输入 JSON 数组：
{payload}

要求：
- 每个摘要长度约为 {max_length} 个字符
- 抓住文章的核心要点和关键见解
- 使用清晰、简洁的中文表达
- 直接输出摘要内容，不要添加"文章1:"、"摘要1:"等任何序号或标记前缀
- 只输出 JSON 数组，不要其他说明"""

CONTENT_SINGLE_PROMPT = """请用中文总结以下文章内容。要求：
- 总结长度约为 {max_length} 个字符
- 抓住文章的核心要点和关键见解
- 使用清晰、简洁的中文表达
- 专注于读者需要了解的内容

文章内容：
{text}"""

COMMENTS_BATCH_PROMPT = """总结以下 HackerNews 评论中的关键讨论要点。返回 JSON 数组，每个元素是对应评论的摘要。

输入 JSON 数组：
{payload}

要求：
- 总结长度约为 100 个字符
- 保留重要的技术术语、库名称、工具名称
- 捕捉评论中的主要观点和共识
- 直接输出摘要内容，不要添加"摘要1:"等任何序号或标记前缀
- 只输出 JSON 数组"""

COMMENTS_SINGLE_PROMPT = """总结以下 HackerNews 评论中的关键讨论要点。要求：
- 总结长度约为 100 个字符
- 保留重要的技术术语、库名称、工具名称（如 React、TypeScript、AWS 等）
- 捕捉评论中的主要观点和共识
- 如果有争议观点，简要提及
- 使用清晰、简洁的中文表达

评论内容：
{text}"""


def json_payload(texts: list[str]) -> str:
    return json.dumps(texts, ensure_ascii=False, indent=2)
