# streamlit_app.py
import time

import requests
import streamlit as st

API_BASE = st.secrets.get("API_BASE", "http://localhost:8000")

st.set_page_config(page_title="sysPass Permissions", page_icon="🔐", layout="wide")

st.title("🔐 sysPass Permissions Tool")
st.markdown("---")

with st.sidebar:
    st.header("📋 Instructions")
    st.markdown("""
    **Jobs run one at a time on the API server.**
    1. *Discover* lists accounts whose user and group permissions are all empty
    2. *Provision* applies the configured permissions to every account of an XML manifest
    3. Tick **Resume** to continue after the last saved progress
    4. Check the job status on the right

    Settings (sysPass URL, credentials, permissions) come from `spt.yml` on the server.
    """)

col1, col2 = st.columns([1, 1])

with col1:
    st.header("🔎 Discover")
    with st.form("discover_job"):
        category = st.text_input("Category", placeholder="exact category name")
        client = st.text_input("Client", placeholder="exact client name")
        login_prefix = st.text_input("Login starts with")
        name_prefix = st.text_input("Name starts with")
        resume_discover = st.checkbox("Resume", key="resume_discover")
        submitted = st.form_submit_button("🚀 Start discovery", use_container_width=True)

        if submitted:
            payload = {
                "resume": resume_discover,
                "category": category or None,
                "client": client or None,
                "login_prefix": login_prefix or None,
                "name_prefix": name_prefix or None,
            }
            try:
                r = requests.post(f"{API_BASE}/jobs/discover", json=payload)
                if r.ok:
                    st.success("✅ Job submitted")
                    st.info(f"**Job ID:** `{r.json()['job_id']}`")
                else:
                    st.error(f"❌ Error: {r.text}")
            except requests.RequestException as e:
                st.error(f"❌ Connection error: {e}")

    st.header("🛠️ Provision")
    with st.form("provision_job"):
        xml_file = st.text_input("Manifest path on server", value="import.xml")
        resume_provision = st.checkbox("Resume", key="resume_provision")
        submitted = st.form_submit_button("🚀 Apply permissions", use_container_width=True)

        if submitted:
            try:
                r = requests.post(f"{API_BASE}/jobs/provision",
                                  json={"xml_file": xml_file, "resume": resume_provision})
                if r.ok:
                    st.success("✅ Job submitted")
                    st.info(f"**Job ID:** `{r.json()['job_id']}`")
                else:
                    st.error(f"❌ Error: {r.text}")
            except requests.RequestException as e:
                st.error(f"❌ Connection error: {e}")

with col2:
    st.header("🔍 Check Job Status")
    auto_refresh = st.checkbox("🔄 Auto-refresh every 5 seconds", value=False)
    job_id = st.text_input("Job ID", placeholder="Enter job ID to check status")
    check_clicked = st.button("🔍 Check Status", use_container_width=True)

    if (check_clicked or auto_refresh) and job_id:
        try:
            r = requests.get(f"{API_BASE}/jobs/{job_id}")
            if r.ok:
                job = r.json()
                status = job["status"]

                if status == "completed":
                    st.success(f"✅ **Status:** {status.upper()}")
                elif status == "failed":
                    st.error(f"❌ **Status:** {status.upper()}")
                else:
                    st.info(f"🔄 **Status:** {status.upper()}")

                if job.get("error"):
                    st.error(job["error"])

                outcome = job.get("outcome")
                if outcome and outcome["had_errors"]:
                    st.warning("⚠️ Some accounts failed, check the logs")

                if job["kind"] == "discover" and job["results"]:
                    st.subheader(f"📧 Accounts with empty permissions ({len(job['results'])})")
                    st.dataframe(job["results"], use_container_width=True)

                with st.expander("📋 Detailed Logs", expanded=False):
                    if job["logs"]:
                        for log_entry in reversed(job["logs"][-20:]):
                            icon = "✅" if log_entry["success"] else "❌"
                            st.text(f"{icon} [{log_entry['timestamp']}] {log_entry['step']}: {log_entry['message']}")
                    else:
                        st.info("No logs yet...")
            else:
                st.error("❌ Job not found or API error")
        except requests.RequestException as e:
            st.error(f"❌ Connection error: {e}")

    if auto_refresh and job_id:
        time.sleep(5)
        st.rerun()

st.markdown("---")
st.subheader("📊 All Jobs Overview")

try:
    all_jobs_r = requests.get(f"{API_BASE}/jobs")
    if all_jobs_r.ok:
        all_jobs = all_jobs_r.json()["jobs"]
        if all_jobs:
            st.dataframe([
                {
                    "Job ID": job["job_id"][:8] + "...",
                    "Kind": job["kind"],
                    "Status": job["status"],
                    "Errors": "⚠️" if job["had_errors"] else "",
                    "Results": job["results"],
                }
                for job in all_jobs[-10:]
            ], use_container_width=True)
        else:
            st.info("No jobs yet")
    else:
        st.warning("Could not fetch job list")
except requests.RequestException as e:
    st.warning(f"Could not fetch jobs: {e}")
