import dash
import dash_leaflet as dl
import dash_leaflet.express as dlx
from dash import html, Output, Input, State, dash_table, dcc
import webbrowser
from threading import Timer

from config import MapConfig
from KDTree import KDTree
from logger import get_logger
from radius_search import radius_search
from station import StationFilter
from station_loader import StationCatalog, StationLoadError, load_stations

log = get_logger(__name__)

FLAG_OPTIONS = [
    {"label": "Main stations", "value": "main"},
    {"label": "Cities", "value": "city"},
    {"label": "Airports", "value": "airport"},
]

TABLE_COLUMNS = [
    {"name": "Station", "id": "name"},
    {"name": "Country", "id": "country"},
    {"name": "TZ group", "id": "timezone_group"},
    {"name": "Lat", "id": "lat"},
    {"name": "Lon", "id": "lon"},
    {"name": "Distance (km)", "id": "distance"},
]


def open_browser(url):
    webbrowser.open_new(url)


def station_row(station, distance=None):
    return {
        "name": station.name,
        "country": station.country,
        "timezone_group": station.timezone_group,
        "lat": round(station.latitude, 5),
        "lon": round(station.longitude, 5),
        "distance": "" if distance is None else round(distance, 2),
    }


def station_marker(station):
    flags = [label for label, on in (("city", station.is_city),
                                     ("main", station.is_main_station),
                                     ("airport", station.is_airport)) if on]
    popup = (
        f"<b>{station.name}</b><br>"
        f"{station.country} // {station.timezone_group}<br>"
        f"{station.latitude:.5f}, {station.longitude:.5f}"
    )
    if flags:
        popup += f"<br>{', '.join(flags)}"
    return {"lat": station.latitude, "lon": station.longitude,
            "popup": popup, "tooltip": station.name}


def criteria_from_controls(timezone_group, country, flags):
    # a ticked flag means "only stations with that flag"; unticked means no constraint
    flags = flags or []
    country = (country or "").strip().upper()
    return StationFilter(
        timezone_group=timezone_group or None,
        country=country or None,
        main_station=True if "main" in flags else None,
        city=True if "city" in flags else None,
        airport=True if "airport" in flags else None,
    )


def rectangle_of(feature):
    # coords: list of vertices as [lon, lat]
    coords = feature["geometry"]["coordinates"][0]
    lons = [pt[0] for pt in coords]
    lats = [pt[1] for pt in coords]
    return min(lats), max(lats), min(lons), max(lons)


def search_drawn_features(tree: KDTree, features):
    """
    Run the spatial query matching each drawn shape.

    Rectangles run a range query; circles (Point features with a _radius in
    meters) run a radius search. Returns (table rows, summaries).
    """
    rows = []
    summaries = []
    seen = set()
    for feature in features:
        geometry = feature.get("geometry") or {}
        properties = feature.get("properties") or {}

        if geometry.get("type") == "Polygon":
            lat_min, lat_max, lon_min, lon_max = rectangle_of(feature)
            for station in tree.range_query(lat_min, lat_max, lon_min, lon_max):
                if station not in seen:
                    seen.add(station)
                    rows.append(station_row(station))

        elif geometry.get("type") == "Point" and properties.get("_radius") is not None:
            lon, lat = geometry["coordinates"][:2]
            result = radius_search(tree, lat, lon, properties["_radius"] / 1000.0)
            summaries.append(str(result))
            summaries.append(str(result.summary))
            for group in result.groups:
                for station in group.stations:
                    if station not in seen:
                        seen.add(station)
                        rows.append(station_row(station, group.distance_km))

    return rows, summaries


def create_app(tree: KDTree, catalog: StationCatalog, config: MapConfig):
    app = dash.Dash(__name__)

    timezone_groups = sorted(set(catalog.frame["timezone_group"]))
    header = f"{len(catalog)} stations | {tree.size()} coordinates | height {tree.height()}"
    if tree.warning:
        header += f" | warning: {tree.warning}"

    app.layout = html.Div([
        html.Div(header, id="stats"),
        html.Div([
            html.Label("Time zone group:"),
            dcc.Dropdown(id="tz_filter", options=timezone_groups, value=None,
                         clearable=True, style={"width": "200px"}),
            html.Label("Country:"),
            dcc.Input(id="country_filter", type="text", placeholder="PT", debounce=True),
            dcc.Checklist(id="flag_filter", options=FLAG_OPTIONS, value=[], inline=True,
                          inputStyle={"margin-right": "5px"}),
            html.Label("k:"),
            dcc.Input(id="k_input", type="number", min=1, value=config.default_k),
        ], style={"margin-bottom": "10px"}),
        dl.Map(
            id="map",
            center=config.center,
            zoom=config.zoom,
            style={'width': '100%', 'height': '500px'},
            children=[
                dl.TileLayer(),
                # markers of the stations inside the visible bounds
                dl.GeoJSON(id="markers-layer", cluster=True, zoomToBoundsOnClick=True,
                           superClusterOptions={"radius": 100}),
                # drawing tools: rectangles for range search, circles for radius search
                dl.FeatureGroup([
                    dl.EditControl(
                        id="edit_control",
                        draw={
                            "rectangle": True,
                            "circle": True,
                            "polyline": False,
                            "polygon": False,
                            "marker": False,
                            "circlemarker": False
                        },
                        edit={"edit": False, "remove": True}
                    )
                ])
            ]
        ),
        html.Pre(id="summary"),
        # stations inside the drawn shapes
        dash_table.DataTable(
            id="table",
            columns=TABLE_COLUMNS,
            data=[],
            page_size=20,
            style_cell={'textAlign': 'left', 'padding': '4px'},
            style_header={'fontWeight': 'bold'}
        ),
        html.H4("Nearest stations to the clicked point"),
        dash_table.DataTable(
            id="knn_table",
            columns=TABLE_COLUMNS,
            data=[],
            style_cell={'textAlign': 'left', 'padding': '4px'},
            style_header={'fontWeight': 'bold'}
        ),
    ], style={'width': '80%', 'margin': '0 auto'})

    @app.callback(
        Output("markers-layer", "data"),
        Output("table", "data"),
        Output("summary", "children"),
        Input("map", "zoom"),
        Input("map", "bounds"),
        Input("edit_control", "geojson")
    )
    def update_visible_markers(zoom, bounds, drawn_geojson):
        if bounds is None:
            raise dash.exceptions.PreventUpdate

        rows = []
        summaries = []
        if drawn_geojson and drawn_geojson.get("features"):
            rows, summaries = search_drawn_features(tree, drawn_geojson["features"])

        # below the zoom threshold the map shows no markers at all
        markers = []
        if zoom and zoom >= config.min_marker_zoom:
            (sw_lat, sw_lon), (ne_lat, ne_lon) = bounds
            markers = [station_marker(s) for s in tree.range_query(sw_lat, ne_lat, sw_lon, ne_lon)]

        return dlx.dicts_to_geojson(markers), rows, "\n\n".join(summaries)

    @app.callback(
        Output("knn_table", "data"),
        Input("map", "clickData"),
        State("tz_filter", "value"),
        State("country_filter", "value"),
        State("flag_filter", "value"),
        State("k_input", "value")
    )
    def update_nearest(click_data, timezone_group, country, flags, k):
        if not click_data or "latlng" not in click_data:
            raise dash.exceptions.PreventUpdate

        lat = click_data["latlng"]["lat"]
        lon = click_data["latlng"]["lng"]
        criteria = criteria_from_controls(timezone_group, country, flags)
        nearest = tree.k_nearest_with_criteria(lat, lon, int(k or config.default_k), criteria)
        log.debug("k-NN at (%.4f, %.4f) [%s]: %d results", lat, lon, criteria, len(nearest))
        return [station_row(sd.station, sd.distance_km) for sd in nearest]

    return app


def main():
    config = MapConfig.from_environment()

    try:
        report = load_stations(config.csv_path)
    except StationLoadError as e:
        log.error("%s", e)
        raise SystemExit(1)

    if not report.stations:
        log.error("No stations loaded. Please check the CSV file path: %s", config.csv_path)
        raise SystemExit(1)
    if report.errors:
        log.warning("%d rows rejected, first: %s", len(report.errors), report.errors[0])

    catalog = StationCatalog(report.stations)
    tree = catalog.build_spatial_index()
    log.info("\n%s", tree.summary())

    app = create_app(tree, catalog, config)

    # Opens the browser and runs
    Timer(1, open_browser, args=(config.url,)).start()
    app.run(host=config.host, port=config.port, debug=config.debug)


if __name__ == '__main__':
    main()
