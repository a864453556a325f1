#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
API:
- POST /api/composite -> Lädt ein Index-Composite (Kachel-URL + GeoTIFF-Download) für eine AOI
- POST /api/timeseries -> Lädt die NDVI/NDWI/NSMI-Zeitreihe für einen Kartenpunkt
- POST /api/plot -> Erstellt Chart-Datasets aus Zeitreihe + Auswahl (Index, Ableitung, Overlay)
- POST /api/dashboard -> Wendet eine Auswahl-Aktion auf den Dashboard-Zustand an
- POST /api/popup -> Berechnet Position/Drag-Zustand des schwebenden Panels
- GET /r/<job_id>/chart.csv -> Ruft den Chart-Export als CSV ab
- GET /healthz -> Überprüft den Zustand des Dienstes
"""

import csv
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Tuple

from flask import Flask, Response, jsonify, render_template_string, request, send_file

from config import (
    APP_TITLE,
    BACKEND_URL,
    CACHE_TTL_SECONDS,
    DEFAULT_END_DATE,
    DEFAULT_MAX_CLOUD,
    DEFAULT_SCALE_M,
    DEFAULT_START_DATE,
    DRAG_HANDLE_HEIGHT_PX,
    LOG_LEVEL,
    MAX_CACHE_ITEMS,
    PANEL_HEIGHT_PX,
    PANEL_WIDTH_PX,
    TMP_DIR,
)
from dashboard_state import DashboardState, apply_action as apply_dashboard_action
from popup_positioner import PopupState, Size, apply_action as apply_popup_action, placement
from series_composer import ComposedChart, compose
from series_model import INDEX_COLORS, INDEX_LABELS, INDEX_ORDER, TIER_ORDER, parse_series
from series_source import COMPOSITE_TYPES, fetch_composite, fetch_timeseries, parse_aoi, parse_point

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)

TMP_DIR.mkdir(parents=True, exist_ok=True)

# -------------------------------
# Flask
# -------------------------------

app = Flask(__name__)
app.json.sort_keys = False

# -------------------------------
# Helpers
# -------------------------------

TIER_WIDTH = {"raw": 2.5, "d1": 1.75, "d2": 1.25}
TIER_POINT_RADIUS = {"raw": 3, "d1": 2, "d2": 2}
DASH_PATTERN = [6, 4]


def _cleanup_cache() -> None:
    try:
        items = []
        for p in TMP_DIR.glob("*"):
            if p.is_file():
                items.append((p.stat().st_mtime, p))
        items.sort(reverse=True)

        now = time.time()
        keep = []
        for mtime, p in items:
            if now - mtime > CACHE_TTL_SECONDS:
                p.unlink(missing_ok=True)
            else:
                keep.append(p)

        if len(keep) > MAX_CACHE_ITEMS:
            for p in keep[MAX_CACHE_ITEMS:]:
                p.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("cache cleanup failed: %s", e)


def _json_body() -> Dict[str, Any]:
    body = request.get_json(force=True, silent=False) or {}
    if not isinstance(body, dict):
        raise ValueError("Request-Body muss ein JSON-Objekt sein.")
    return body


def _rgba(hex_color: str, alpha: float) -> str:
    h = hex_color.lstrip("#")
    r, g, b = int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)
    return f"rgba({r}, {g}, {b}, {alpha})"


def _chartjs_config(chart: ComposedChart) -> Dict[str, Any]:
    """
    Chart.js line config. spanGaps draws across None values without inventing points.
    """
    datasets = []
    for ds in chart.datasets:
        color = INDEX_COLORS.get(ds.style.color_key, "#64748b")
        datasets.append({
            "label": ds.label,
            "data": list(ds.values),
            "borderColor": color,
            "backgroundColor": _rgba(color, 0.1),
            "borderWidth": TIER_WIDTH.get(ds.style.tier, 2.0),
            "borderDash": [] if ds.style.solid else DASH_PATTERN,
            "pointRadius": TIER_POINT_RADIUS.get(ds.style.tier, 2),
            "pointHoverRadius": 5,
            "fill": False,
            "tension": 0.4,
            "spanGaps": True,
        })

    return {
        "type": "line",
        "data": {"labels": list(chart.labels), "datasets": datasets},
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "animation": False,
            "spanGaps": True,
            "plugins": {"legend": {"position": "top", "labels": {"usePointStyle": True}}},
            "scales": {
                "x": {"ticks": {"maxRotation": 45, "minRotation": 45}},
                "y": {"grid": {"color": "rgba(148, 163, 184, 0.1)"}},
            },
        },
    }


def _write_chart_csv(path: Path, chart: ComposedChart) -> None:
    # one row per x label, one column per dataset
    fieldnames = ["label"] + [ds.label for ds in chart.datasets]
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        for i, x in enumerate(chart.labels):
            row: Dict[str, Any] = {"label": x}
            for ds in chart.datasets:
                row[ds.label] = ds.values[i] if i < len(ds.values) else None
            w.writerow(row)


def _viewport_and_panel(body: Dict[str, Any]) -> Tuple[Size, Size]:
    vp = body.get("viewport")
    if vp is None:
        raise ValueError("viewport fehlt.")
    viewport = Size.from_dict(vp)
    panel = Size.from_dict(body["panel"]) if body.get("panel") else Size(float(PANEL_WIDTH_PX), float(PANEL_HEIGHT_PX))
    return viewport, panel


# -------------------------------
# Routes / UI
# -------------------------------

INDEX_HTML = """
<!doctype html>
<html lang="de">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{{ title }}</title>

  <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css" />

  <style>
    :root{
      --bg:#0b0f19;
      --card:#111a2e;
      --text:#e6eaf2;
      --muted:#a8b3cf;
      --border: rgba(255,255,255,.10);
      --primary:#6ea8fe;
      --radius: 16px;
      --mono: ui-monospace, SFMono-Regular, Menlo, Monaco, Consolas, "Liberation Mono", "Courier New", monospace;
      --font: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial;
    }
    html,body{ height:100%; }
    body{ margin:0; font-family: var(--font); background: var(--bg); color: var(--text); display:flex; flex-direction:column; }
    header{ padding: 12px 16px; display:flex; flex-wrap:wrap; align-items:end; gap: 12px; border-bottom: 1px solid var(--border); }
    h1{ font-size: 18px; margin:0 12px 0 0; letter-spacing: .2px; }
    label{ color: var(--muted); font-size: 12px; display:flex; flex-direction:column; gap:4px; }
    select,input{
      background: rgba(255,255,255,.04); border: 1px solid var(--border); border-radius: 10px;
      padding: 7px 9px; color: var(--text);
    }
    button{
      appearance:none; border: 1px solid var(--border); background: rgba(255,255,255,.06);
      color: var(--text); padding: 8px 12px; border-radius: 12px; cursor: pointer; font-weight: 600;
    }
    button.primary{ border-color: rgba(110,168,254,.35); background: rgba(110,168,254,.16); }
    button:disabled{ opacity:.55; cursor:not-allowed; }
    a{ color: var(--primary); text-decoration: none; }
    #map{ flex:1; min-height: 420px; }
    .status{ color: var(--muted); font-size: 13px; padding: 6px 10px; border-radius: 12px; background: rgba(0,0,0,.18); border: 1px solid var(--border); }
    .err{ border-color: rgba(255,100,100,.35); background: rgba(255,100,100,.10); color: #ffd1d1; }
    .ok{ border-color: rgba(120,220,160,.35); background: rgba(120,220,160,.08); }

    #panel{
      position: fixed; z-index: 1001; display:none; flex-direction:column;
      width: {{ panel_w }}px; height: {{ panel_h }}px;
      background: var(--card); border: 1px solid var(--border); border-radius: var(--radius);
      box-shadow: 0 18px 60px rgba(0,0,0,.45); overflow:hidden;
    }
    #panel.fullscreen{ left: 24px !important; top: 24px !important; width: calc(100vw - 48px); height: calc(100vh - 48px); }
    #panelHead{
      height: {{ handle_h }}px; box-sizing: border-box; padding: 0 12px; display:flex; align-items:center; justify-content:space-between;
      cursor: move; user-select:none; border-bottom: 1px solid var(--border); background: rgba(255,255,255,.03);
    }
    #panel.fullscreen #panelHead{ cursor: default; }
    .panelBody{ flex:1; min-height:0; padding: 10px 12px; display:flex; flex-direction:column; gap: 8px; overflow:auto; }
    .row{ display:flex; gap: 10px; flex-wrap: wrap; align-items: center; }
    .chk{ flex-direction:row; align-items:center; gap:4px; font-size: 12px; color: var(--text); }
    .cards{ display:grid; grid-template-columns: repeat(3, 1fr); gap: 6px; }
    .card{ padding: 6px 8px; border-radius: 10px; border: 1px solid var(--border); }
    .card .k{ font-size: 11px; color: var(--muted); }
    .card .v{ font-size: 16px; font-weight: 700; }
    .chartBox{ flex:1; min-height: 220px; position:relative; }
    .small{ font-size: 12px; color: var(--muted); }
    .mono{ font-family: var(--mono); }
  </style>
</head>
<body>
  <header>
    <h1>{{ title }}</h1>
    <label>Start <input id="start" type="date" value="{{ default_start }}"></label>
    <label>Ende <input id="end" type="date" value="{{ default_end }}"></label>
    <label>Cloud &lt; (%) <input id="cloud" type="number" min="0" max="100" value="{{ default_cloud }}" style="width:80px;"></label>
    <label>Composite
      <select id="compositeType">
        {% for k in composite_types %}<option value="{{ k }}">{{ k }}</option>{% endfor %}
      </select>
    </label>
    <button class="primary" id="btn-composite">Composite laden</button>
    <a id="download" style="display:none;" target="_blank" rel="noreferrer">GeoTIFF herunterladen</a>
    <div id="status" class="status">Klicke auf die Karte, um eine Zeitreihe zu laden.</div>
  </header>

  <div id="map"></div>

  <div id="panel">
    <div id="panelHead">
      <div><b>Zeitreihe</b> <span id="where" class="small mono"></span></div>
      <div class="row">
        <button id="btn-full" title="Vollbild">⤢</button>
        <button id="btn-close" title="Schließen">✕</button>
      </div>
    </div>
    <div class="panelBody">
      <div class="cards">
        {% for k in indices %}
        <div class="card" style="border-color: {{ colors[k] }}55;">
          <div class="k" style="color: {{ colors[k] }};">{{ k }} · {{ index_labels[k] }}</div>
          <div class="v" id="avg-{{ k }}">–</div>
        </div>
        {% endfor %}
      </div>

      <div class="row">
        {% for k in indices %}
        <label class="chk"><input type="checkbox" data-index="{{ k }}"> {{ k }}</label>
        {% endfor %}
        <span class="small">|</span>
        {% for t in tiers %}
        <label class="chk"><input type="checkbox" data-tier="{{ t }}"> {{ t }}</label>
        {% endfor %}
      </div>

      <div class="row">
        <span class="small">Overlay</span>
        <input id="r1s" type="date"><input id="r1e" type="date">
        <span class="small">vs.</span>
        <input id="r2s" type="date"><input id="r2e" type="date">
        <button id="btn-apply">Anwenden</button>
        <button id="btn-clear">Zurücksetzen</button>
        <button id="btn-csv">CSV</button>
      </div>

      <div class="chartBox"><canvas id="chart"></canvas></div>
    </div>
  </div>

  <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
  <script src="https://cdn.jsdelivr.net/npm/chart.js@4.4.1/dist/chart.umd.min.js"></script>

  <script>
    const map = L.map('map').setView([17.0, 81.8], 11);
    L.tileLayer('https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}', {
      maxZoom: 19, attribution: '&copy; Esri — Imagery'
    }).addTo(map);

    // default AOI for composites
    const AOI = { type: "Polygon", coordinates: [[[81.75,16.95],[81.75,17.1],[81.95,17.1],[81.95,16.95],[81.75,16.95]]] };

    let compositeLayer = null;
    let marker = null;
    let series = [];
    let dashState = null;
    let popupState = null;
    let chart = null;
    let fullscreen = false;
    let dragBusy = false;
    let dragPending = null;

    const elStatus = document.getElementById('status');
    const panel = document.getElementById('panel');
    const panelHead = document.getElementById('panelHead');

    function setStatus(html, cls){
      elStatus.className = 'status' + (cls ? (' ' + cls) : '');
      elStatus.innerHTML = html;
    }

    async function apiJson(url, body){
      const res = await fetch(url, { method:'POST', headers:{'Content-Type':'application/json'}, body: JSON.stringify(body) });
      const ct = (res.headers.get('content-type')||'').toLowerCase();
      const raw = await res.text();
      if(!ct.includes('json')){
        throw new Error(`Server lieferte kein JSON (HTTP ${res.status}, Content-Type=${ct}). Antwort-Auszug: ${raw.slice(0,240)}`);
      }
      const js = raw ? JSON.parse(raw) : {};
      if(!res.ok){
        throw new Error(js && js.error ? js.error : (`HTTP ${res.status}`));
      }
      return js;
    }

    function viewport(){ return { width: window.innerWidth, height: window.innerHeight }; }
    function panelSize(){ return { width: panel.offsetWidth || {{ panel_w }}, height: panel.offsetHeight || {{ panel_h }} }; }

    // ---- popup placement ----

    async function popupAction(action){
      const data = await apiJson('/api/popup', { state: popupState, action, panel: panelSize(), viewport: viewport() });
      popupState = data.state;
      if(data.placement){
        panel.style.left = data.placement.left + 'px';
        panel.style.top = data.placement.top + 'px';
      }
      return data;
    }

    async function flushDrag(){
      if(dragBusy || !dragPending) return;
      dragBusy = true;
      const p = dragPending; dragPending = null;
      try{ await popupAction({ type:'update_drag', pointer: p }); }
      finally{ dragBusy = false; }
      if(dragPending) flushDrag();
    }

    function onMove(e){
      dragPending = { x: e.clientX, y: e.clientY };
      flushDrag().catch(err => setStatus('Fehler: ' + err.message, 'err'));
    }

    async function onUp(){
      window.removeEventListener('pointermove', onMove);
      window.removeEventListener('pointerup', onUp);
      while(dragBusy){ await new Promise(r => setTimeout(r, 10)); }
      await flushDrag();
      await popupAction({ type:'end_drag' });
    }

    panelHead.addEventListener('pointerdown', async (e) => {
      if(fullscreen || e.target.closest('button')) return;
      e.preventDefault();
      // pointerup may arrive while begin_drag is still in flight
      let pointerIsDown = true;
      const releaseGuard = () => { pointerIsDown = false; };
      window.addEventListener('pointerup', releaseGuard, { once: true });
      let data;
      try{
        data = await popupAction({ type:'begin_drag', pointer: { x: e.clientX, y: e.clientY } });
      }finally{
        window.removeEventListener('pointerup', releaseGuard);
      }
      if(data.state.phase !== 'dragging') return;
      if(!pointerIsDown){
        await popupAction({ type:'end_drag' });
        return;
      }
      window.addEventListener('pointermove', onMove);
      window.addEventListener('pointerup', onUp);
    });

    window.addEventListener('resize', () => {
      if(popupState && popupState.phase !== 'closed') popupAction({ type:'place' }).catch(() => {});
    });

    // ---- dashboard state / chart ----

    function syncControls(){
      document.querySelectorAll('input[data-index]').forEach(el => { el.checked = !!dashState.index_sel[el.dataset.index]; });
      document.querySelectorAll('input[data-tier]').forEach(el => { el.checked = !!dashState.deriv_sel[el.dataset.tier]; });
      document.getElementById('r1s').value = dashState.range1.start || '';
      document.getElementById('r1e').value = dashState.range1.end || '';
      document.getElementById('r2s').value = dashState.range2.start || '';
      document.getElementById('r2e').value = dashState.range2.end || '';
    }

    async function dashboardAction(action){
      const data = await apiJson('/api/dashboard', { state: dashState, action });
      dashState = data.state;
      syncControls();
      await renderChart();
    }

    async function renderChart(exportCsv){
      const data = await apiJson('/api/plot', { series, state: dashState, export: !!exportCsv });
      if(chart){
        chart.data = data.chart.data;
        chart.update();
      }else{
        chart = new Chart(document.getElementById('chart'), data.chart);
      }
      return data;
    }

    document.querySelectorAll('input[data-index]').forEach(el => el.addEventListener('change', () =>
      dashboardAction({ type:'toggle_index', name: el.dataset.index }).catch(e => setStatus('Fehler: ' + e.message, 'err'))));
    document.querySelectorAll('input[data-tier]').forEach(el => el.addEventListener('change', () =>
      dashboardAction({ type:'toggle_derivative', tier: el.dataset.tier }).catch(e => setStatus('Fehler: ' + e.message, 'err'))));

    document.getElementById('btn-apply').addEventListener('click', async () => {
      try{
        const v = id => document.getElementById(id).value;
        dashState = (await apiJson('/api/dashboard', { state: dashState, action: { type:'set_range', which: 1, start: v('r1s'), end: v('r1e') } })).state;
        dashState = (await apiJson('/api/dashboard', { state: dashState, action: { type:'set_range', which: 2, start: v('r2s'), end: v('r2e') } })).state;
        await dashboardAction({ type:'apply_overlay' });
        if(!dashState.overlay_enabled) setStatus('Overlay braucht zwei vollständige Datumsbereiche.', 'err');
      }catch(e){ setStatus('Fehler: ' + e.message, 'err'); }
    });
    document.getElementById('btn-clear').addEventListener('click', () =>
      dashboardAction({ type:'clear_overlay' }).catch(e => setStatus('Fehler: ' + e.message, 'err')));
    document.getElementById('btn-csv').addEventListener('click', async () => {
      try{
        const data = await renderChart(true);
        if(data.download && data.download.csv) window.location = data.download.csv;
      }catch(e){ setStatus('Fehler: ' + e.message, 'err'); }
    });

    document.getElementById('btn-full').addEventListener('click', () => {
      fullscreen = !fullscreen;
      panel.classList.toggle('fullscreen', fullscreen);
      if(chart) chart.resize();
    });

    async function closePanel(){
      await popupAction({ type:'close' });
      panel.style.display = 'none';
      fullscreen = false;
      panel.classList.remove('fullscreen');
      // session discarded -> selections back to defaults
      dashState = (await apiJson('/api/dashboard', { state: dashState, action: { type:'reset' } })).state;
      syncControls();
    }
    document.getElementById('btn-close').addEventListener('click', () => closePanel().catch(e => setStatus('Fehler: ' + e.message, 'err')));

    // ---- map ----

    map.on('click', async (e) => {
      try{
        if(marker) map.removeLayer(marker);
        marker = L.marker(e.latlng).addTo(map);
        map.flyTo(e.latlng, map.getZoom());

        panel.style.display = 'flex';
        await popupAction({ type:'open', anchor: { x: e.originalEvent.clientX, y: e.originalEvent.clientY } });
        document.getElementById('where').textContent = `${e.latlng.lat.toFixed(4)}, ${e.latlng.lng.toFixed(4)}`;

        setStatus('Lade Zeitreihe…', '');
        const data = await apiJson('/api/timeseries', {
          point: { lat: e.latlng.lat, lng: e.latlng.lng },
          start_date: document.getElementById('start').value,
          end_date: document.getElementById('end').value,
          max_cloud: Number(document.getElementById('cloud').value || 100),
        });
        series = data.rows || [];
        for(const k of {{ indices|tojson }}){
          const v = data.statistics ? data.statistics['avg_' + k.toLowerCase()] : null;
          document.getElementById('avg-' + k).textContent = (v === null || v === undefined) ? '–' : v;
        }
        await renderChart();
        setStatus(`Zeitreihe: <b>${data.count}</b> Punkte.`, 'ok');
      }catch(err){ setStatus('Fehler: ' + err.message, 'err'); }
    });

    document.getElementById('btn-composite').addEventListener('click', async () => {
      try{
        setStatus('Lade Composite…', '');
        const data = await apiJson('/api/composite', {
          geojson: AOI,
          start_date: document.getElementById('start').value,
          end_date: document.getElementById('end').value,
          max_cloud: Number(document.getElementById('cloud').value || 100),
          index_type: document.getElementById('compositeType').value,
        });
        if(compositeLayer) map.removeLayer(compositeLayer);
        compositeLayer = L.tileLayer(data.tile_url, { opacity: 0.7 }).addTo(map);
        const a = document.getElementById('download');
        if(data.download_url){ a.href = data.download_url; a.style.display = 'inline'; } else { a.style.display = 'none'; }
        setStatus(`Composite <b>${data.index_type}</b> geladen.`, 'ok');
      }catch(e){ setStatus('Fehler: ' + e.message, 'err'); }
    });

    (async () => {
      dashState = (await apiJson('/api/dashboard', { state: null, action: { type:'reset' } })).state;
      syncControls();
    })().catch(e => setStatus('Fehler: ' + e.message, 'err'));
  </script>
</body>
</html>
"""

@app.get("/")
def index():
    return render_template_string(
        INDEX_HTML,
        title=APP_TITLE,
        default_start=DEFAULT_START_DATE,
        default_end=DEFAULT_END_DATE,
        default_cloud=int(DEFAULT_MAX_CLOUD),
        composite_types=list(COMPOSITE_TYPES),
        indices=list(INDEX_ORDER),
        tiers=list(TIER_ORDER),
        colors=INDEX_COLORS,
        index_labels=INDEX_LABELS,
        panel_w=PANEL_WIDTH_PX,
        panel_h=PANEL_HEIGHT_PX,
        handle_h=DRAG_HANDLE_HEIGHT_PX,
    )


@app.post("/api/composite")
def api_composite():
    try:
        body = _json_body()
        aoi = parse_aoi(body.get("geojson") or body.get("geometry"))
        out = fetch_composite(
            aoi,
            start_date=body.get("start_date", DEFAULT_START_DATE),
            end_date=body.get("end_date", DEFAULT_END_DATE),
            max_cloud=body.get("max_cloud", DEFAULT_MAX_CLOUD),
            index_type=body.get("index_type") or "NDVI",
            scale=int(body.get("scale", DEFAULT_SCALE_M)),
        )
        return jsonify(out)
    except Exception as e:
        logger.warning("composite failed: %s", e)
        return jsonify({"error": str(e)}), 400


@app.post("/api/timeseries")
def api_timeseries():
    try:
        body = _json_body()
        pt = parse_point(body.get("point"))
        series, stats = fetch_timeseries(
            pt,
            start_date=body.get("start_date", DEFAULT_START_DATE),
            end_date=body.get("end_date", DEFAULT_END_DATE),
            max_cloud=body.get("max_cloud", DEFAULT_MAX_CLOUD),
        )
        return jsonify({
            "point": {"lat": pt.y, "lng": pt.x},
            "rows": [p.to_dict() for p in series],
            "statistics": stats,
            "count": len(series),
        })
    except Exception as e:
        logger.warning("timeseries failed: %s", e)
        return jsonify({"error": str(e)}), 400


@app.post("/api/plot")
def api_plot():
    try:
        body = _json_body()
        series = parse_series(body.get("series"))
        state = DashboardState.from_dict(body.get("state"))

        chart = compose(series, state.index_sel, state.deriv_sel, state.overlay())

        out = chart.to_dict()
        out["chart"] = _chartjs_config(chart)

        if body.get("export"):
            _cleanup_cache()
            job_id = uuid.uuid4().hex[:12]
            _write_chart_csv(TMP_DIR / f"{job_id}.chart.csv", chart)
            out["download"] = {"csv": f"/r/{job_id}/chart.csv"}

        return jsonify(out)
    except Exception as e:
        logger.warning("plot failed: %s", e)
        return jsonify({"error": str(e)}), 400


@app.post("/api/dashboard")
def api_dashboard():
    try:
        body = _json_body()
        state = DashboardState.from_dict(body.get("state"))
        new_state = apply_dashboard_action(state, body.get("action") or {})
        return jsonify({"state": new_state.to_dict()})
    except Exception as e:
        logger.warning("dashboard action failed: %s", e)
        return jsonify({"error": str(e)}), 400


@app.post("/api/popup")
def api_popup():
    try:
        body = _json_body()
        viewport, panel = _viewport_and_panel(body)
        state = PopupState.from_dict(body.get("state"))
        new_state = apply_popup_action(state, body.get("action") or {}, panel, viewport)
        pl = placement(new_state, panel, viewport)
        return jsonify({
            "state": new_state.to_dict(),
            "placement": pl.to_dict() if pl else None,
        })
    except Exception as e:
        logger.warning("popup action failed: %s", e)
        return jsonify({"error": str(e)}), 400


@app.get("/r/<job_id>/chart.csv")
def job_chart_csv(job_id: str):
    p = TMP_DIR / f"{job_id}.chart.csv"
    if not job_id.isalnum() or not p.exists():
        return jsonify({"error": "Job nicht gefunden/abgelaufen."}), 404
    return send_file(p, mimetype="text/csv", as_attachment=True, download_name=f"chart_{job_id}.csv", conditional=True)


@app.get("/healthz")
def healthz():
    return Response("ok", mimetype="text/plain")


if __name__ == "__main__":
    port = int(os.getenv("PORT", "8080"))
    logger.info("backend: %s", BACKEND_URL)
    app.run(host="0.0.0.0", port=port, debug=False)
