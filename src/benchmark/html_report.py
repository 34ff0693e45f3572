"""
HTML benchmark report.

A single self-contained page (plotly.js from CDN) with:
  - four line charts per table group: time (ms), peak memory (MB),
    speed (cells/s) and speed relative to the baseline library
  - a linear / log Y-axis toggle on every chart
  - PNG export from the chart mode bar
  - the WRITE table and one READ table per origin writer, same cells as
    the console report
"""

from __future__ import annotations

import html
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from src.backends import registry
from src.benchmark import store
from src.benchmark.records import ResultRecord
from src.benchmark.report import (
    ByCase,
    chart_series,
    column_titles,
    group_read,
    group_write,
    library_order,
    split_by_mode,
    table_rows,
)

log = logging.getLogger(__name__)

PLOTLY_LAYOUT_DEFAULTS = dict(
    template="plotly_white",
    font=dict(family="Inter, system-ui, sans-serif", size=12),
    margin=dict(l=60, r=20, t=60, b=50),
    legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    height=320,
)

CHARTS = [
    # (series key, title, axis suffix)
    ("elapsed_ms", "Time (ms)", " ms"),
    ("peak_memory_mb", "Peak memory (MB)", " MB"),
    ("cells_per_sec", "Speed (cells/s)", " cells/s"),
    ("relative_speed", "Relative speed (× baseline)", "×"),
]

_CSS = """
:root { color-scheme: light dark; }
body { font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif; margin: 0; padding: 24px; }
h1 { margin: 0 0 6px; font-size: 24px; }
h2 { margin: 0 0 12px; font-size: 18px; }
h3 { margin: 18px 0 10px; font-size: 15px; }
.sub { opacity: .75; font-size: 13px; }
.section { margin-top: 18px; padding-top: 14px; border-top: 1px solid rgba(127,127,127,.25); }
.table-wrap { overflow-x: auto; border: 1px solid rgba(127,127,127,.25); border-radius: 12px; }
table { border-collapse: collapse; width: 100%; min-width: 920px; }
th, td { padding: 10px 12px; border-bottom: 1px solid rgba(127,127,127,.18); text-align: left; font-size: 13px; vertical-align: top; }
th { background: rgba(127,127,127,.08); }
code { font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, monospace; font-size: 12px; }
.legend { margin-top: 8px; font-size: 12px; opacity: .75; }
.empty { padding: 14px 16px; border: 1px dashed rgba(127,127,127,.35); border-radius: 12px; opacity: .85; }
.muted { opacity: .55; }
.fail { color: #b00020; font-weight: 700; }
.charts-grid { display: grid; grid-template-columns: repeat(2, minmax(280px, 1fr)); gap: 12px; margin: 12px 0 18px; }
.chart-card { border: 1px solid rgba(127,127,127,.25); border-radius: 12px; padding: 6px; }
.files li { font-size: 12px; }
.footer { margin-top: 22px; padding-top: 12px; border-top: 1px solid rgba(127,127,127,.25); opacity: .75; font-size: 12px; }
@media (max-width: 1000px) { .charts-grid { grid-template-columns: 1fr; } }
"""


def e(value) -> str:
    return html.escape(str(value), quote=True)


def format_bytes(n: int) -> str:
    if n < 1024:
        return f"{n} B"
    kb = n / 1024
    if kb < 1024:
        return f"{kb:.1f} KB"
    mb = kb / 1024
    if mb < 1024:
        return f"{mb:.1f} MB"
    return f"{mb / 1024:.2f} GB"


def _safe_id(value: str) -> str:
    return re.sub(r"[^a-z0-9_-]+", "_", value, flags=re.IGNORECASE)


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

def make_line_chart(labels: list[str], series: dict[str, list], title: str, suffix: str):
    """One line per library, one point per case, with a linear/log Y toggle."""
    import plotly.graph_objects as go

    fig = go.Figure()
    for lib, values in series.items():
        fig.add_trace(
            go.Scatter(
                name=lib,
                x=labels,
                y=values,
                mode="lines+markers",
                connectgaps=True,
                hovertemplate=f"%{{x}}: %{{y:.2f}}{suffix}<extra>{lib}</extra>",
            )
        )
    fig.update_layout(
        title=title,
        **PLOTLY_LAYOUT_DEFAULTS,
        updatemenus=[dict(
            type="buttons",
            direction="left",
            x=0, y=1.18, xanchor="left", yanchor="top",
            showactive=True,
            buttons=[
                dict(label="linear", method="relayout", args=[{"yaxis.type": "linear"}]),
                dict(label="log", method="relayout", args=[{"yaxis.type": "log"}]),
            ],
        )],
    )
    fig.update_xaxes(type="category", title_text="case")
    fig.update_yaxes(rangemode="tozero")
    return fig


def render_charts_block(prefix: str, by_case: ByCase, lib_order: list[str],
                        baseline_lib: str, include_js: bool) -> str:
    import plotly.io as pio

    payload = chart_series(by_case, lib_order, baseline_lib)
    cards = []
    for key, title, suffix in CHARTS:
        fig = make_line_chart(payload["labels"], payload["series"][key], title, suffix)
        div_id = f"{prefix}_{key}"
        div = pio.to_html(
            fig,
            full_html=False,
            include_plotlyjs="cdn" if include_js else False,
            div_id=div_id,
            config={
                "displaylogo": False,
                "toImageButtonOptions": {"format": "png", "filename": div_id, "scale": 2},
            },
        )
        include_js = False
        cards.append(f'<div class="chart-card">{div}</div>')
    return '<div class="charts-grid">' + "".join(cards) + "</div>"


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def render_table(by_case: ByCase, lib_order: list[str], baseline_lib: str,
                 hide_missing: bool = False, hide_fail: bool = False) -> str:
    rows = table_rows(by_case, lib_order, baseline_lib, hide_missing, hide_fail)
    if not rows:
        return render_empty("No rows.")
    out = ['<div class="table-wrap"><table><thead><tr><th class="case">case</th>']
    out += [f"<th>{e(t)}</th>" for t in column_titles(lib_order, baseline_lib)]
    out.append("</tr></thead><tbody>")
    for case, cells in rows:
        out.append(f'<tr><td class="case"><code>{e(case)}</code></td>')
        out += [f'<td class="{e(c.css)}">{e(c.text)}</td>' for c in cells]
        out.append("</tr>")
    out.append("</tbody></table></div>")
    out.append(
        '<div class="legend">Legend: time (ms), peak memory (MB), speed (cells/s, rows/s), '
        "relative speed (% of baseline)</div>"
    )
    return "".join(out)


def render_empty(message: str) -> str:
    return f'<div class="empty">{e(message)}</div>'


def render_file_list(selected: Path, files: list[Path]) -> str:
    if not files:
        return ""
    items = []
    for p in files:
        st = p.stat()
        mtime = datetime.fromtimestamp(st.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
        mark = " (this report)" if p.name == selected.name else ""
        items.append(f"<li><code>{e(p.name)}</code> · {format_bytes(st.st_size)} · {mtime}{e(mark)}</li>")
    return '<div class="sub">Stores in results directory:</div><ul class="files">' + "".join(items) + "</ul>"


# ---------------------------------------------------------------------------
# Page
# ---------------------------------------------------------------------------

def render_page(records: list[ResultRecord], source: Path,
                hide_missing: bool = False, hide_fail: bool = False,
                other_files: list[Path] | None = None) -> str:
    writes, reads = split_by_mode(records)
    write_grouped = group_write(writes)
    read_grouped = group_read(reads)
    write_libs = library_order(write_grouped, registry.WRITE_LIBS)

    body = [
        "<div>",
        "<h1>Benchmark results</h1>",
        f'<div class="sub">Source: <code>{e(source.name)}</code> · generated '
        f'{e(datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"))}</div>',
        render_file_list(source, other_files or []),
        "</div>",
    ]

    # -- charts --
    body.append('<div class="section"><h2>Charts</h2>')
    body.append(
        f'<div class="sub">Relative speed baseline: WRITE <code>{e(registry.WRITE_BASELINE)}</code>, '
        f'READ <code>{e(registry.READ_BASELINE)}</code>. Use the linear/log buttons to switch the Y scale '
        "and the camera icon to export a PNG.</div>"
    )
    include_js = True
    body.append("<h3>WRITE</h3>")
    if write_grouped:
        body.append(render_charts_block("write", write_grouped, write_libs,
                                        registry.WRITE_BASELINE, include_js))
        include_js = False
    else:
        body.append(render_empty("No write results for charts."))
    body.append("<h3>READ</h3>")
    if not read_grouped:
        body.append(render_empty("No read results for charts."))
    for writer, by_case in read_grouped.items():
        body.append(f"<h3>Files created by <code>{e(writer)}</code></h3>")
        body.append(render_charts_block(f"read_{_safe_id(writer)}", by_case,
                                        library_order(by_case, registry.READ_LIBS),
                                        registry.READ_BASELINE, include_js))
        include_js = False
    body.append("</div>")

    # -- tables --
    body.append('<div class="section"><h2>Write benchmark</h2>')
    body.append(
        render_table(write_grouped, write_libs, registry.WRITE_BASELINE, hide_missing, hide_fail)
        if writes else render_empty("No write results in this file.")
    )
    body.append("</div>")

    body.append('<div class="section"><h2>Read benchmark</h2>')
    if not reads:
        body.append(render_empty("No read results in this file."))
    for writer, by_case in read_grouped.items():
        body.append(f"<h3>Reading files created by: <code>{e(writer)}</code></h3>")
        body.append(render_table(by_case, library_order(by_case, registry.READ_LIBS),
                                 registry.READ_BASELINE, hide_missing, hide_fail))
    body.append("</div>")

    body.append(f'<div class="footer">File path: <code>{e(source)}</code></div>')

    return (
        "<!doctype html>\n<html lang=\"en\">\n<head>\n<meta charset=\"utf-8\">\n"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">\n"
        f"<title>Benchmark results</title>\n<style>{_CSS}</style>\n</head>\n<body>\n"
        + "\n".join(body)
        + "\n</body>\n</html>\n"
    )


def generate_html_report(source: Path, output_path: Path,
                         hide_missing: bool = False, hide_fail: bool = False) -> Path:
    """Render the store at ``source`` to ``output_path``."""
    records = store.read_records(source)
    page = render_page(
        records, source, hide_missing, hide_fail,
        other_files=store.list_result_files(source.parent),
    )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(page, encoding="utf-8")
    log.info(f"HTML report saved to: {output_path}")
    return output_path
