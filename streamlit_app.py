# streamlit_app.py
import contextlib, time, traceback
from io import StringIO

import streamlit as st
import streamlit.components.v1 as components
from streamlit_ace import st_ace

from stepview.config import RenderConfig
from stepview.errors import RenderError
from stepview.highlight_cache import HighlightCache
from stepview.lexers import PygmentsHighlighter, Theme, lexer_for
from stepview.py_debugger import LineStepper
from stepview.sourcemap import SourceMap
from stepview.viz_cfg import render_graph_pane
from stepview.viz_source import render_source_pane, source_pane_html

SCRIPT = "<editor>"
DEFAULT_CODE = """def fact(n):
    acc = 1
    while n > 1:
        acc *= n
        n -= 1
    return acc

try:
    print(fact(5))
    print(fact("x"))
except TypeError as e:
    print("caught", e)
"""

# ---------- Session state init (must be BEFORE UI renders) ----------
st.session_state.setdefault("frames", [])
st.session_state.setdefault("stdout", "")
st.session_state.setdefault("stepper", None)
st.session_state.setdefault("source", "")

# ---------- Tab indices ----------
TAB_CFG    = 0
TAB_SOURCE = 1
TAB_STATE  = 2

# ---------- Helpers ----------
def timeit(fn):
    t0 = time.perf_counter()
    out = fn()
    return out, (time.perf_counter() - t0) * 1000.0  # ms


perf = {}  # collected timings

def perf_badge(*pairs):
    if not pairs:
        return
    cols = st.columns(len(pairs))
    for c, (label, ms) in zip(cols, pairs):
        with c:
            st.metric(label, f"{ms:.1f} ms")

def highlight_cache(config: RenderConfig) -> HighlightCache:
    # one cache per session and theme; sessions never share one
    key = f"highlight_cache_{config.theme.name}"
    if key not in st.session_state:
        st.session_state[key] = HighlightCache(PygmentsHighlighter(lexer_for(config.language), config.style_table()))
    return st.session_state[key]

def run_stepper(code: str, max_steps: int):
    stepper = LineStepper(filename=SCRIPT, max_steps=max_steps)
    buf = StringIO()
    with contextlib.redirect_stdout(buf):
        frames = stepper.run_script(code)
    st.session_state.stepper = stepper
    st.session_state.frames = frames
    st.session_state.stdout = buf.getvalue()
    st.session_state.source = code

# ---------- Page ----------
st.set_page_config(page_title="Step Viewer", layout="wide")
st.title("🪜 Step Viewer")
st.caption("Run → Step → CFG with current position  •  Source with the executing span marked")

# ---------- Sidebar (Ace editor) ----------
with st.sidebar:
    st.header("Controls")
    code = st_ace(
        value=DEFAULT_CODE,
        language="python",
        theme="tomorrow_night_eighties",
        min_lines=16,
        max_lines=32,
        auto_update=True,
        key="ace_python",
    )
    theme = st.selectbox("Theme", [t.name for t in Theme], index=0)
    max_steps = st.number_input("Max steps", min_value=10, max_value=100000, value=2000, step=100)
    config = RenderConfig(theme=Theme[theme], max_steps=int(max_steps))

    cols = st.columns(2)
    if cols[0].button("Run & Record"):
        try:
            _, perf["run_ms"] = timeit(lambda: run_stepper(code, config.max_steps))
        except SyntaxError as e:
            st.error(f"Syntax error: {e}")
    if cols[1].button("Clear"):
        st.session_state.frames = []
        st.session_state.stepper = None

frames = st.session_state.frames
stepper = st.session_state.stepper
if not frames:
    st.info("Press **Run & Record** to step through the script.")
    st.stop()

step = st.slider("Step", 0, len(frames) - 1, 0)
frame = frames[step]
lines = st.multiselect("Breakpoint lines", sorted(set(range(1, st.session_state.source.count("\n") + 2))))
breakpoints = stepper.breakpoints_for(frame.body, lines)
st.markdown(f"**{frame.body.name}** · line {frame.line} · "
            f"{'unwinding' if frame.current_location() is None else frame.position}")

tabs = st.tabs(["CFG", "Source", "State"])

# ---------- CFG ----------
with tabs[TAB_CFG]:
    try:
        markup, perf["graph_ms"] = timeit(lambda: render_graph_pane(frame.body, breakpoints, frame.position, config=config))
        components.html(markup, height=800, scrolling=True)
    except RenderError as e:
        st.error(f"CFG render failed: {e}")
        st.code(traceback.format_exc())
    perf_badge(("Graph", perf.get("graph_ms", 0.0)))

# ---------- Source ----------
with tabs[TAB_SOURCE]:
    try:
        source_map = SourceMap({SCRIPT: st.session_state.source})
        cache = highlight_cache(config)
        panes, perf["source_ms"] = timeit(lambda: render_source_pane(frame, source_map, cache, config))
        st.markdown(source_pane_html(panes, config.style_table()), unsafe_allow_html=True)
        st.caption(f"{len(cache)} file(s) highlighted this session")
    except RenderError as e:
        st.error(f"Source render failed: {e}")
        st.code(traceback.format_exc())
    perf_badge(("Source", perf.get("source_ms", 0.0)), ("Run", perf.get("run_ms", 0.0)))

# ---------- State ----------
with tabs[TAB_STATE]:
    st.markdown("**Locals**")
    st.write(frame.variables)
    st.markdown("**Program output**")
    if st.session_state.stdout.strip():
        st.code(st.session_state.stdout, language="text")
    else:
        st.info("(no output)")
