"""Генератор self-contained HTML-отчёта по агрегированным результатам прогона."""

from __future__ import annotations

import html as _html
from datetime import timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vigil.models.analysis import (
        DeveloperTask,
        ErrorPattern,
        ExecutiveSummary,
        QualityMetrics,
        TrendAnalysis,
    )
    from vigil.models.errors import DetectedError
    from vigil.models.results import AggregatedTestResults
    from vigil.models.suite import TestExecutionResult

_MAX_ERRORS_SHOWN = 50
_MESSAGE_SNIPPET = 600


# ---------------------------------------------------------------------------
# Публичный API
# ---------------------------------------------------------------------------

def generate_html_report(results: "AggregatedTestResults") -> str:
    """Сгенерировать self-contained HTML-отчёт из AggregatedTestResults."""
    from vigil import __version__

    generated_at = results.generated_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    status = results.executive_summary.overall_status.value

    return f"""<!DOCTYPE html>
<html lang="ru">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>vigil · отчёт прогона {_e(generated_at)}</title>
  <style>
{_CSS}
  </style>
</head>
<body>
  <div class="container">

    <header class="header">
      <div class="header-brand">vigil · E2E Quality Report</div>
      <div class="header-title">Прогон от {_e(generated_at)}
        <span class="status status-{_e(status)}">{_e(status)}</span>
      </div>
      <div class="header-meta">Сгенерировано: {_e(generated_at)} · vigil v{_e(__version__)}</div>
    </header>

    {_render_stats(results)}
    {_render_executive(results.executive_summary)}
    {_render_suites(results.test_results)}
    {_render_tasks(results.developer_tasks)}
    {_render_patterns(results.error_analysis.error_patterns)}
    {_render_errors(results.detected_errors)}
    {_render_quality(results.quality_metrics, results.trend_analysis)}

    <footer class="footer">
      vigil v{_e(__version__)} · {_e(generated_at)}
    </footer>

  </div>
</body>
</html>"""


# ---------------------------------------------------------------------------
# Секции отчёта
# ---------------------------------------------------------------------------

def _render_stats(results: "AggregatedTestResults") -> str:
    summary = results.summary
    metrics = results.quality_metrics
    critical = len(results.error_analysis.categorized_errors.critical)

    cards: list[tuple[str, str, str]] = [
        ("Наборов", str(summary.total_suites), ""),
        ("Успешно", str(summary.passed_suites), "success" if summary.passed_suites else "muted"),
        ("Упало", str(summary.failed_suites), "danger" if summary.failed_suites else "muted"),
        ("Таймаут", str(summary.timeout_suites), "warning" if summary.timeout_suites else "muted"),
        ("Ошибок", str(len(results.detected_errors)), "info"),
        ("Критичных", str(critical), "danger" if critical else "muted"),
        ("Стабильность", str(metrics.stability_score), _score_class(metrics.stability_score)),
    ]

    cards_html = "".join(
        f'<div class="stat-card {cls}">'
        f'<div class="stat-value">{_e(val)}</div>'
        f'<div class="stat-label">{_e(label)}</div>'
        f"</div>"
        for label, val, cls in cards
    )
    return f'<div class="stats">{cards_html}</div>'


def _render_executive(summary: "ExecutiveSummary") -> str:
    findings = _list(summary.key_findings) or '<div class="empty">Замечаний нет.</div>'
    return (
        '<div class="section">'
        '<div class="section-title">Сводка для руководства</div>'
        '<div class="panel">'
        f'<p class="impact">{_e(summary.business_impact)}</p>'
        f'<p class="meta-line">Риск: <strong>{_e(summary.risk_level.value)}</strong>'
        f" · Время на исправление: <strong>{_e(summary.time_to_resolution)}</strong></p>"
        '<div class="block-title">Ключевые выводы</div>'
        f"{findings}"
        '<div class="block-title">Рекомендуемые действия</div>'
        f"{_list(summary.recommended_actions)}"
        '<div class="block-title">Следующие шаги</div>'
        f"{_list(summary.next_steps)}"
        "</div>"
        "</div>"
    )


def _render_suites(results: "list[TestExecutionResult]") -> str:
    if not results:
        return (
            '<div class="section">'
            '<div class="section-title">Наборы</div>'
            '<div class="empty">Ни один набор не был запущен.</div>'
            "</div>"
        )

    rows = "".join(
        "<tr>"
        f"<td>{_e(r.suite_name)}</td>"
        f"<td>{_e(r.role)}</td>"
        f'<td><span class="badge badge-{_e(r.status.value)}">{_e(r.status.value)}</span></td>'
        f"<td>{r.duration:.1f} с</td>"
        f"<td>{r.errors}</td>"
        f"<td>{r.warnings}</td>"
        f"<td>{r.attempts}</td>"
        "</tr>"
        for r in results
    )
    return (
        '<div class="section">'
        '<div class="section-title">Наборы</div>'
        '<table class="grid">'
        "<thead><tr><th>Набор</th><th>Роль</th><th>Статус</th><th>Длительность</th>"
        "<th>Ошибки</th><th>Предупреждения</th><th>Попытки</th></tr></thead>"
        f"<tbody>{rows}</tbody>"
        "</table>"
        "</div>"
    )


def _render_tasks(tasks: "list[DeveloperTask]") -> str:
    if not tasks:
        return ""

    total_hours = sum(t.estimated_hours for t in tasks)
    cards = "".join(
        '<div class="card">'
        '<div class="card-header">'
        f'<span class="chip prio-{_e(t.priority.value)}">{_e(t.priority.value)}</span>'
        f'<span class="card-title">{_e(t.id)} · {_e(t.title)}</span>'
        f'<span class="chip">{_e(t.category.value)}</span>'
        f'<span class="chip">{t.estimated_hours:g} ч</span>'
        "</div>"
        '<div class="card-body">'
        f"<p>{_e(t.description)}</p>"
        f"{_list(t.acceptance_criteria)}"
        f'<p class="meta-line">{_e(t.testing_notes)}</p>'
        "</div>"
        "</div>"
        for t in tasks
    )
    return (
        '<div class="section">'
        f'<div class="section-title">Задачи для разработчиков ({len(tasks)}, {total_hours:g} ч)</div>'
        f"{cards}"
        "</div>"
    )


def _render_patterns(patterns: "list[ErrorPattern]") -> str:
    if not patterns:
        return ""

    cards = "".join(
        '<div class="card">'
        '<div class="card-header">'
        f'<span class="chip sev-{_e(p.severity.value)}">{_e(p.severity.value)}</span>'
        f'<span class="card-title">{_e(p.description)}</span>'
        f'<span class="chip">×{p.frequency}</span>'
        "</div>"
        '<div class="card-body">'
        f"<p><strong>Причина:</strong> {_e(p.common_cause)}</p>"
        f"<p><strong>Исправление:</strong> {_e(p.suggested_fix)}</p>"
        f'<p class="meta-line">Роли: {_e(", ".join(p.affected_roles))}</p>'
        "</div>"
        "</div>"
        for p in patterns
    )
    return (
        '<div class="section">'
        '<div class="section-title">Паттерны ошибок</div>'
        f"{cards}"
        "</div>"
    )


def _render_errors(errors: "list[DetectedError]") -> str:
    if not errors:
        return (
            '<div class="section">'
            '<div class="section-title">Обнаруженные ошибки</div>'
            '<div class="empty">Ошибок не обнаружено.</div>'
            "</div>"
        )

    order = {"critical": 0, "high": 1, "medium": 2, "low": 3}
    shown = sorted(errors, key=lambda e: order[e.severity.value])[:_MAX_ERRORS_SHOWN]
    items = "".join(
        '<div class="error-item">'
        f'<span class="chip sev-{_e(e.severity.value)}">{_e(e.severity.value)}</span>'
        f'<span class="chip">{_e(e.type.value)}</span>'
        f'<span class="meta-line">{_e(e.user_role)} · {_e(e.url)}</span>'
        f'<pre>{_e(_snippet(e.message))}</pre>'
        "</div>"
        for e in shown
    )
    more = ""
    if len(errors) > len(shown):
        more = f'<div class="meta-line">… и ещё {len(errors) - len(shown)}</div>'
    return (
        '<div class="section">'
        f'<div class="section-title">Обнаруженные ошибки ({len(errors)})</div>'
        f"{items}{more}"
        "</div>"
    )


def _render_quality(metrics: "QualityMetrics", trend: "TrendAnalysis") -> str:
    role_rows = "".join(
        f"<tr><td>{_e(role)}</td>"
        f"<td>{metrics.errors_per_role.get(role, 0)}</td>"
        f"<td>{coverage:.0f}%</td>"
        f"<td>{_e(trend.role_stability[role].value) if role in trend.role_stability else '—'}</td></tr>"
        for role, coverage in metrics.test_coverage.by_role.items()
    )
    roles_html = ""
    if role_rows:
        roles_html = (
            '<table class="grid">'
            "<thead><tr><th>Роль</th><th>Ошибки</th><th>Покрытие</th><th>Стабильность</th></tr></thead>"
            f"<tbody>{role_rows}</tbody>"
            "</table>"
        )

    critical_path = ""
    if trend.critical_path_issues:
        critical_path = (
            '<div class="block-title">Критический путь</div>'
            f"{_list(trend.critical_path_issues)}"
        )

    return (
        '<div class="section">'
        '<div class="section-title">Качество и тренды</div>'
        '<div class="panel">'
        f'<p class="meta-line">Покрытие: <strong>{metrics.test_coverage.overall:.0f}%</strong>'
        f" · Доля критичных: <strong>{metrics.critical_error_rate:.0%}</strong>"
        f" · Влияние на UX: <strong>{_e(metrics.user_experience_impact.value)}</strong>"
        f" · Риск регрессии: <strong>{_e(trend.regression_risk.value)}</strong></p>"
        f'<p class="meta-line">Растут: {_e(", ".join(trend.error_trends.increasing) or "—")}'
        f' · Стабильны: {_e(", ".join(trend.error_trends.stable) or "—")}</p>'
        f"{critical_path}"
        f"{roles_html}"
        "</div>"
        "</div>"
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _e(s: object) -> str:
    """HTML-escape строку."""
    return _html.escape(str(s))


def _list(items: list[str]) -> str:
    if not items:
        return ""
    return "<ul>" + "".join(f"<li>{_e(item)}</li>" for item in items) + "</ul>"


def _snippet(text: str) -> str:
    if len(text) <= _MESSAGE_SNIPPET:
        return text
    return text[:_MESSAGE_SNIPPET] + "\n…"


def _score_class(score: int) -> str:
    if score >= 80:
        return "success"
    if score >= 50:
        return "warning"
    return "danger"


# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------

_CSS = """
    :root {
      --bg: #f8fafc;
      --surface: #ffffff;
      --border: #e2e8f0;
      --text: #0f172a;
      --text-muted: #64748b;
      --primary: #2563eb;
      --danger: #dc2626;
      --danger-light: #fef2f2;
      --success: #16a34a;
      --warning: #d97706;
      --info: #0284c7;
      --radius: 12px;
      --radius-sm: 8px;
      --mono: ui-monospace, SFMono-Regular, Menlo, Monaco, Consolas, monospace;
    }

    *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

    body {
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Arial, sans-serif;
      background-color: var(--bg);
      color: var(--text);
      line-height: 1.6;
      font-size: 14px;
    }

    .container { max-width: 1200px; margin: 0 auto; padding: 2rem 1.5rem; }

    /* ---- Header ---- */
    .header {
      background: var(--surface);
      border: 1px solid var(--border);
      border-radius: var(--radius);
      padding: 1.5rem 2rem;
      margin-bottom: 2rem;
    }
    .header-brand {
      font-size: 0.75rem;
      font-weight: 700;
      color: var(--primary);
      text-transform: uppercase;
      letter-spacing: 0.1em;
    }
    .header-title { font-size: 1.5rem; font-weight: 700; }
    .header-meta { font-size: 0.875rem; color: var(--text-muted); }

    .status {
      font-size: 0.8rem;
      text-transform: uppercase;
      padding: 0.2rem 0.7rem;
      border-radius: 9999px;
      vertical-align: middle;
      color: #fff;
    }
    .status-critical { background: var(--danger); }
    .status-needs-attention { background: var(--warning); }
    .status-stable { background: var(--info); }
    .status-excellent { background: var(--success); }

    /* ---- Stats ---- */
    .stats {
      display: grid;
      grid-template-columns: repeat(auto-fit, minmax(130px, 1fr));
      gap: 1rem;
      margin-bottom: 2rem;
    }
    .stat-card {
      background: var(--surface);
      border: 1px solid var(--border);
      border-radius: var(--radius);
      padding: 1.25rem 1rem;
      text-align: center;
    }
    .stat-value { font-size: 2rem; font-weight: 700; line-height: 1; margin-bottom: 0.5rem; }
    .stat-label {
      font-size: 0.75rem;
      font-weight: 600;
      color: var(--text-muted);
      text-transform: uppercase;
    }
    .stat-card.danger .stat-value { color: var(--danger); }
    .stat-card.warning .stat-value { color: var(--warning); }
    .stat-card.success .stat-value { color: var(--success); }
    .stat-card.info .stat-value { color: var(--info); }
    .stat-card.muted .stat-value { color: var(--text-muted); }

    /* ---- Sections ---- */
    .section { margin-bottom: 2.5rem; }
    .section-title { font-size: 1.25rem; font-weight: 700; margin-bottom: 1rem; }
    .empty {
      color: var(--text-muted);
      font-style: italic;
      background: var(--surface);
      padding: 2rem;
      border-radius: var(--radius);
      text-align: center;
      border: 1px dashed var(--border);
    }
    .panel, .card {
      background: var(--surface);
      border: 1px solid var(--border);
      border-radius: var(--radius);
      padding: 1.25rem 1.5rem;
      margin-bottom: 1rem;
    }
    .panel ul, .card ul { padding-left: 1.25rem; margin-bottom: 0.75rem; }
    .block-title {
      font-size: 0.75rem;
      font-weight: 700;
      text-transform: uppercase;
      color: var(--text-muted);
      margin: 0.75rem 0 0.25rem;
    }
    .impact { font-weight: 600; margin-bottom: 0.5rem; }
    .meta-line { color: var(--text-muted); font-size: 0.85rem; }

    /* ---- Cards ---- */
    .card-header { display: flex; align-items: center; gap: 0.75rem; flex-wrap: wrap; margin-bottom: 0.5rem; }
    .card-title { font-weight: 600; flex: 1; min-width: 200px; word-break: break-word; }
    .chip {
      font-size: 0.75rem;
      font-weight: 600;
      padding: 0.125rem 0.6rem;
      border-radius: 9999px;
      background: var(--bg);
      border: 1px solid var(--border);
    }
    .prio-P0, .sev-critical { background: var(--danger); color: #fff; border-color: var(--danger); }
    .prio-P1, .sev-high { background: var(--warning); color: #fff; border-color: var(--warning); }
    .prio-P2, .sev-medium { background: var(--info); color: #fff; border-color: var(--info); }

    /* ---- Tables ---- */
    .grid { width: 100%; border-collapse: collapse; background: var(--surface); margin-top: 0.75rem; }
    .grid th, .grid td { text-align: left; padding: 0.5rem 0.75rem; border-bottom: 1px solid var(--border); }
    .grid th { font-size: 0.75rem; text-transform: uppercase; color: var(--text-muted); }
    .badge { font-weight: 600; text-transform: uppercase; font-size: 0.75rem; }
    .badge-passed { color: var(--success); }
    .badge-failed { color: var(--danger); }
    .badge-timeout { color: var(--warning); }
    .badge-skipped { color: var(--text-muted); }

    /* ---- Errors ---- */
    .error-item {
      background: var(--surface);
      border: 1px solid var(--border);
      border-left: 4px solid var(--danger);
      border-radius: var(--radius-sm);
      padding: 0.75rem 1rem;
      margin-bottom: 0.75rem;
      display: flex;
      flex-wrap: wrap;
      gap: 0.5rem;
      align-items: center;
    }
    .error-item pre {
      width: 100%;
      font-family: var(--mono);
      font-size: 0.8125rem;
      white-space: pre-wrap;
      word-break: break-word;
      background: var(--danger-light);
      padding: 0.5rem;
      border-radius: 6px;
    }

    /* ---- Footer ---- */
    .footer {
      text-align: center;
      font-size: 0.8125rem;
      color: var(--text-muted);
      margin-top: 3rem;
      padding: 1.5rem;
      border-top: 1px solid var(--border);
    }

    @media (max-width: 768px) {
      .container { padding: 1rem; }
      .stats { grid-template-columns: repeat(2, 1fr); }
    }
"""
