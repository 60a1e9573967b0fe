import datetime

import streamlit as st
import pandas as pd
import graphviz

import config
import leveling_engine
import schedule_service
from calendar_engine import to_date
from dag_engine import build_dependency_graph
from logger import configure_logging
from store import ScheduleStore

logger = configure_logging()

# --- Configuration ---
st.set_page_config(
    page_title="Project Schedule Engine",
    page_icon="📅",
    layout="wide",
    initial_sidebar_state="expanded",
)

# --- Sidebar (Upload & Settings) ---
st.sidebar.title("Input & Settings")

st.sidebar.markdown("### 1. Upload Project Data")
st.sidebar.info("`tasks.csv` is required. Dependencies may come from `dependencies.csv` "
                "or a `predecessors` column on the tasks ('3FS;5SS+2d').")
uploaded_tasks = st.sidebar.file_uploader("Tasks", type=["csv"], key="tasks_uploader")
uploaded_deps = st.sidebar.file_uploader("Dependencies (optional)", type=["csv"], key="deps_uploader")
uploaded_resources = st.sidebar.file_uploader("Resources (optional)", type=["csv"], key="resources_uploader")
uploaded_assignments = st.sidebar.file_uploader("Assignments (optional)", type=["csv"], key="assignments_uploader")

if 'store' not in st.session_state:
    st.session_state['store'] = None
if 'load_errors' not in st.session_state:
    st.session_state['load_errors'] = []
if 'last_result' not in st.session_state:
    st.session_state['last_result'] = None

if uploaded_tasks and st.sidebar.button("Load Data"):
    try:
        store, errors = ScheduleStore.from_csv(uploaded_tasks, uploaded_deps, uploaded_resources, uploaded_assignments)
        st.session_state['store'] = store
        st.session_state['load_errors'] = errors
        st.session_state['last_result'] = None
    except (ValueError, pd.errors.ParserError) as e:
        st.sidebar.error(f"Error reading CSV files: {e}")

store = st.session_state['store']

# Fall back to the sample data folder when nothing was uploaded
if store is None and not uploaded_tasks:
    try:
        store, errors = ScheduleStore.from_csv_dir(config.DATA_DIR)
        st.session_state['store'] = store
        st.session_state['load_errors'] = errors
    except FileNotFoundError:
        pass

st.sidebar.markdown("---")
st.sidebar.subheader("2. Schedule")

project_id = None
if store is not None and store.tasks["project_id"].notna().any():
    projects = sorted(store.tasks["project_id"].dropna().unique().tolist(), key=str)
    project_id = st.sidebar.selectbox("Project", projects)

project_start = st.sidebar.date_input("Project start date", value=datetime.date.today())

if store is not None and st.sidebar.button("Run Schedule", type="primary"):
    st.session_state['last_result'] = schedule_service.run_schedule(store, project_id, project_start)

# --- Main ---
st.title("Project Schedule")

for err in st.session_state['load_errors']:
    st.warning(err)

if store is None:
    st.info("Upload `tasks.csv` to get started.")
    st.stop()

result = st.session_state['last_result']
if result is not None:
    if result["success"]:
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Tasks Scheduled", result["tasks_updated"])
        c2.metric("Project Finish", str(result["project_end_date"] or "-"))
        c3.metric("Critical Tasks", len(result["critical_tasks"]))
        c4.metric("Critical Path Length (days)", result["critical_path_length"])
        st.caption(result["message"])
    else:
        st.error(f"Scheduling failed: {result['message']}")

schedule_data = schedule_service.get_schedule_data(store, project_id)
task_names = {t["id"]: t["name"] or str(t["id"]) for t in schedule_data}

# Dependency validation status per task (missing links, cycles...)
snapshot = store.load_snapshot(project_id)
_, dep_validation = build_dependency_graph(snapshot.tasks, snapshot.dependencies, validate=True)
if any("Cycle" in str(val) for val in dep_validation.values()):
    st.error("Circular dependencies detected. Fix them before running the schedule.")

tabs = st.tabs(["Schedule", "Network Diagram", "Constraints & Leveling", "Edit & Propagate"])

with tabs[0]:
    st.subheader("Schedule")
    if schedule_data:
        df_view = pd.DataFrame(schedule_data)
        df_view["predecessors"] = df_view["predecessors"].apply(
            lambda preds: "; ".join(f"{p['task_id']}{p['type'].value}{p['lag_days']:+d}d" if p['lag_days']
                                    else f"{p['task_id']}{p['type'].value}" for p in preds)
        )
        df_view["is_critical_path"] = df_view["is_critical_path"].apply(lambda x: "YES" if x else "NO")
        df_view = df_view.drop(columns=["successors"])
        df_view["dependency_validation_status"] = df_view["id"].map(dep_validation).fillna("OK")
        st.dataframe(df_view, use_container_width=True)
    else:
        st.info("No tasks in this project.")

with tabs[1]:
    st.subheader("Project Network Diagram")
    if schedule_data:
        try:
            dot = graphviz.Digraph()
            dot.attr(rankdir='LR')

            crit_lookup = {t["id"]: t["is_critical_path"] for t in schedule_data}
            for t in schedule_data:
                is_crit = crit_lookup.get(t["id"], False)
                color = "red" if is_crit else "black"
                label = f"{task_names[t['id']]}\\n{t['duration']}d"
                if t["total_float"] is not None:
                    label += f" | TF {t['total_float']}"
                dot.node(str(t["id"]), label=label, color=color, fontcolor=color, penwidth="2" if is_crit else "1")

            for t in schedule_data:
                for succ in t["successors"]:
                    edge_label = succ["type"].value
                    if succ["lag_days"]:
                        edge_label += f"{succ['lag_days']:+d}d"
                    both_crit = crit_lookup.get(t["id"]) and crit_lookup.get(succ["task_id"])
                    dot.edge(str(t["id"]), str(succ["task_id"]), label=edge_label,
                             color="red" if both_crit else "black", penwidth="2" if both_crit else "1")

            st.graphviz_chart(dot, use_container_width=True)
        except Exception as e:
            st.warning(f"Could not render graph: {e}")
            st.info("Ensure Graphviz is installed on your system.")

with tabs[2]:
    st.subheader("Constraint Check")
    if schedule_data:
        task_id = st.selectbox("Task", list(task_names), format_func=lambda t: task_names[t], key="diag_task")
        diagnosis = leveling_engine.diagnose_task(snapshot, task_id)

        c1, c2 = st.columns(2)
        c1.metric("Resource-driven duration", f"{diagnosis['computed_duration']} days")
        c2.metric("Computed finish", str(diagnosis["computed_end_date"] or "-"))

        conflict = diagnosis["conflict"]
        if conflict["has_conflict"]:
            st.error(conflict["message"])
            st.markdown("#### Leveling Options")
            for s in diagnosis["suggestions"]:
                with st.expander(f"[{s['feasibility'].upper()}] {s['description']}"):
                    st.write(f"Preview duration: **{s['preview_duration']} days**, "
                             f"finish **{s['preview_end_date'] or '-'}**")
                    if s["changes"]:
                        st.dataframe(pd.DataFrame(s["changes"]), use_container_width=True)
        elif conflict["constraint_type"] in ("asap", "alap") or conflict["constraint_date"] is None:
            st.info("This task has no hard constraint date.")
        else:
            st.success(f"Constraint {conflict['constraint_type'].upper()} {conflict['constraint_date']} is met.")

with tabs[3]:
    st.subheader("Edit Task & Propagate")
    if schedule_data:
        task_id = st.selectbox("Task", list(task_names), format_func=lambda t: task_names[t], key="edit_task")
        current = store.get_task(task_id) or {}
        with st.form("edit_task_form"):
            hours = st.number_input("Estimated hours", min_value=0.0,
                                    value=float(current.get("estimated_hours") or 0.0), step=1.0)
            start = st.date_input("Start date", value=to_date(current.get("start_date")) or project_start)
            submitted = st.form_submit_button("Save & Propagate")

        if submitted:
            store.update_task(task_id, {"estimated_hours": hours, "start_date": start})
            schedule_service.propagate_dates(store, project_id, task_id)
            st.success("Dates propagated to downstream tasks.")
            changed = pd.DataFrame([store.get_task(t) for t in task_names])
            st.dataframe(changed[["id", "name", "start_date", "end_date", "computed_duration"]],
                         use_container_width=True)
