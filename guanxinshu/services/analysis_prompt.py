"""Prompt construction for the journal PDF analysis report."""

from __future__ import annotations

from textwrap import dedent
from typing import Optional

_PREAMBLE = dedent(
    """
    你是一位專業的心理諮詢師與個人成長教練。請仔細閱讀並綜合分析使用者上傳的這些「觀心書（反思日記）」PDF 檔案。
    請提供一份深入、溫暖、具建設性的綜合分析報告，內容需要包含以下部分：
    1. **整體情緒與狀態總結**：總結這段時間內使用者的主要情緒波動、壓力來源以及成長亮點。
    2. **行為與思維模式分析**：點出使用者在這段期間常出現的思考慣性或行為模式（包含正向與需要調整的）。
    """
)

_COMPARISON_SECTION = dedent(
    """
    3. **跨期成長與變化 (重點)**：我提供了一份使用者過去的歷史分析報告。請務必詳細比對這次上傳的日記與這份過去報告的差異。明確點出使用者在哪方面取得了進步、哪些心理負擔已經被放下，或是哪些心理狀態出現了轉變。
    以下是過去的歷史報告內容供你參照：
    \"\"\"
    {previous_report}
    \"\"\"
    """
)

_RECOMMENDATIONS_WITH_HISTORY = dedent(
    """
    4. **具體建議與下一步**：基於你的分析與跨期成長，給予 3 點具體且可行的建議，幫助使用者在未來達到更穩定的身心狀態。
    """
)

_RECOMMENDATIONS = dedent(
    """
    3. **具體建議與下一步**：基於你的分析，給予 3 點具體且可行的建議，幫助使用者在未來達到更穩定的身心狀態。
    """
)

_CLOSING = dedent(
    """
    請使用繁體中文，語氣要溫暖、同理、且充滿支持感。排版請使用 Markdown 格式（如標題、清單、粗體等）以利閱讀。
    """
)


def build_analysis_prompt(previous_report_content: Optional[str] = None) -> str:
    """Assemble the report instructions, with a comparison block when history exists."""
    sections = [_PREAMBLE]
    if previous_report_content:
        # Embedded verbatim; the report may itself contain braces.
        sections.append(
            _COMPARISON_SECTION.replace("{previous_report}", previous_report_content)
        )
        sections.append(_RECOMMENDATIONS_WITH_HISTORY)
    else:
        sections.append(_RECOMMENDATIONS)
    sections.append(_CLOSING)
    return "".join(sections)


__all__ = ["build_analysis_prompt"]
