import pathlib, subprocess, sys
import streamlit as st
from deployer.audit import JsonlAuditLog
from deployer.config import load_env, load_settings
from deployer.report import audit_frame, last_failures, summarize

BASE = pathlib.Path(__file__).resolve().parents[1]
OUT = BASE / 'outputs'
load_env(BASE); SETTINGS = load_settings(BASE)
LOG = BASE / SETTINGS.audit_path


def run(*args):
    p = subprocess.run([sys.executable, '-m', 'deployer.run_deploy', '--repo', str(BASE), *args], capture_output=True, text=True, cwd=BASE)
    return p.returncode, p.stdout + p.stderr


st.set_page_config(page_title='SQL Deploy', layout='wide')
st.title('SQL Deployment Control Panel (Local)')
st.caption(f"SQL dir: {SETTINGS.sql_dir} · audit: {'logs/audit.jsonl (simulation)' if SETTINGS.simulate else SETTINGS.audit_table}")
col1, col2 = st.columns([1,3])
with col1:
    full = st.checkbox('Full deploy (ignore history)')
    keep_going = st.checkbox('Continue after a failed file')
    mode = ['--full'] if full else []
    if keep_going: mode.append('--continue-on-error')
    if st.button('Preview plan'): st.session_state['output'] = run('--dry-run', *mode)
    if st.button('Deploy'):
        rc, text = run(*mode); st.session_state['output'] = (rc, text)
        (st.success if rc == 0 else st.error)('Deployment finished.' if rc == 0 else f'Deployment failed (exit {rc}).')
    if st.button('History report'):
        p = subprocess.run([sys.executable, '-m', 'deployer.history', '--repo', str(BASE)], capture_output=True, text=True, cwd=BASE)
        st.session_state['output'] = (p.returncode, p.stdout + p.stderr)
with col2:
    st.subheader('Last command output')
    if 'output' in st.session_state: st.code(st.session_state['output'][1])
    else: st.info('Preview a plan or run a deployment.')
    st.subheader('History report (history_report.json)')
    hp = OUT / 'history_report.json'
    if hp.exists(): st.code(hp.read_text(), language='json')
    else: st.info('Run the history report to produce history_report.json')
    st.subheader('Audit log')
    df = audit_frame(JsonlAuditLog(LOG).rows())
    if df.empty: st.info('No audit log yet.')
    else:
        st.dataframe(summarize(df)); st.dataframe(df.tail(200), use_container_width=True)
        lf = last_failures(df)
        if not lf.empty: st.subheader('Last failures'); st.dataframe(lf)
