import os
import time

import requests
import streamlit as st
import streamlit.components.v1 as components

API = os.getenv("API_URL", "http://127.0.0.1:8000")
STATUS_POLL_SEC = float(os.getenv("STATUS_POLL_SEC", "1.0"))

st.set_page_config(page_title="지방 만들기", layout="wide")
st.title("지방 만들기 (Jibang Maker)")

POSITION_LABELS = {"primary": "남 / 단위", "secondary": "본비", "tertiary": "재취비"}


def api_get(path, params=None, timeout=60):
    url = f"{API}{path}"
    r = requests.get(url, params=params or {}, timeout=timeout)
    r.raise_for_status()
    return r


def api_post(path, json_data=None, params=None, timeout=60):
    url = f"{API}{path}"
    r = requests.post(url, json=json_data, params=params or {}, timeout=timeout)
    r.raise_for_status()
    return r


def show_error(e: Exception, context: str = ""):
    detail = ""
    response = getattr(e, "response", None)
    if response is not None:
        try:
            detail = response.json().get("detail", "")
        except ValueError:
            detail = response.text
    msg = f"{context}\n{detail or str(e)}".strip()
    st.error(msg)
    with st.expander("Details"):
        st.exception(e)


def _status_code(e: Exception):
    response = getattr(e, "response", None)
    return response.status_code if response is not None else None


@st.cache_data(ttl=3600)
def load_catalog():
    relations = api_get("/relations", timeout=5).json().get("relations", [])
    presets = api_get("/presets", timeout=5).json()
    return relations, presets


def new_session():
    data = api_post("/sessions", timeout=10).json()
    st.session_state.session_id = data["session_id"]
    st.session_state.status = data


def session_post(path, json_data=None, timeout=60, context=""):
    """POST to a session route; a 404 means the session expired and is recreated."""
    try:
        data = api_post(f"/sessions/{st.session_state.session_id}{path}", json_data=json_data, timeout=timeout).json()
        st.session_state.status = data
        return data
    except requests.HTTPError as e:
        if _status_code(e) == 404:
            st.warning("세션이 만료되어 새로 시작합니다.")
            new_session()
            return None
        show_error(e, context)
        return None
    except Exception as e:
        show_error(e, context)
        return None


def refresh_status():
    try:
        st.session_state.status = api_get(f"/sessions/{st.session_state.session_id}", timeout=10).json()
    except requests.HTTPError as e:
        if _status_code(e) == 404:
            new_session()
        else:
            show_error(e, "Session error")


# ---- state ----
if "pdf_bytes" not in st.session_state:
    st.session_state.pdf_bytes = None
if "chat" not in st.session_state:
    st.session_state.chat = []

try:
    relations, presets = load_catalog()
    if "session_id" not in st.session_state:
        new_session()
    else:
        refresh_status()
except Exception as e:
    show_error(e, "Backend connection error")
    st.stop()

relation_by_kind = {r["kind"]: r for r in relations}
relation_kinds = [r["kind"] for r in relations]
status = st.session_state.status
sheet = status["state"]

# ---- sidebar ----
st.sidebar.header("설정")
show_outlines = st.sidebar.checkbox("외곽선 표시", value=bool(sheet["show_outlines"]))
if show_outlines != bool(sheet["show_outlines"]):
    session_post("/outlines", {"show": show_outlines}, context="Outline error")
    st.rerun()

if st.sidebar.button("Health Check"):
    try:
        st.sidebar.json(api_get("/health", timeout=8).json())
    except Exception as e:
        show_error(e, "Health error")

with st.sidebar.expander("자주 쓰는 본관 / 성씨"):
    st.write(", ".join(f"{c['kor']}({c['hanja']})" for c in presets.get("clans", [])))
    st.write(", ".join(f"{n['kor']}({n['hanja']})" for n in presets.get("names", [])))

# ---- assistant ----
with st.sidebar.expander("AI 도우미", expanded=False):
    if not st.session_state.chat:
        try:
            greeting = api_get("/assistant/greeting", timeout=5).json().get("greeting", "")
        except Exception:
            greeting = ""
        if greeting:
            st.session_state.chat.append(("assistant", greeting))
    for role, text in st.session_state.chat:
        st.markdown(f"**{'나' if role == 'user' else '도우미'}**: {text}")
    with st.form("assistant_form", clear_on_submit=True):
        question = st.text_input("질문", placeholder="예: 김해 김씨 한자는?")
        if st.form_submit_button("보내기") and question.strip():
            st.session_state.chat.append(("user", question.strip()))
            try:
                with st.spinner("답변 생성 중..."):
                    answer = api_post("/assistant", {"question": question.strip()}, timeout=120).json()["answer"]
                st.session_state.chat.append(("assistant", answer))
            except Exception as e:
                show_error(e, "Assistant error")
            st.rerun()


# ---- slot editor ----
def _key(index: int, field: str, slot: dict) -> str:
    # Server-side rewrites (templates, conversion) must reset the widget.
    return f"slot{index}_{field}_{slot[field]}"


def render_slot_editor(index: int):
    is_custom = bool(sheet["is_custom"][index])
    if index > 0:
        custom = st.checkbox("개별 입력", value=is_custom, key=f"custom_{index}")
        if custom != is_custom:
            session_post(f"/slots/{index}/custom", context="Custom toggle error")
            st.rerun()
        if not is_custom:
            st.info("1번 지방과 같은 내용이 표시됩니다.")
            return

    slot = sheet["slots"][index]
    current_kind = slot["relation"]
    kind = st.selectbox(
        "관계",
        relation_kinds,
        index=relation_kinds.index(current_kind),
        format_func=lambda k: relation_by_kind[k]["label"],
        key=f"relation_{index}",
    )
    if kind != current_kind:
        session_post(f"/slots/{index}/relation", {"relation": kind}, context="Relation error")
        st.rerun()

    gender = relation_by_kind[current_kind]["gender"]
    is_child = current_kind in ("SON", "DAUGHTER")
    has_tertiary = bool(slot["korean_tertiary"] or slot["hanja_tertiary"])
    positions = ["primary"]
    if gender == "COUPLE":
        positions.append("secondary")
        if has_tertiary:
            positions.append("tertiary")

    with st.form(f"slot_form_{index}"):
        fields: dict[str, str] = {}
        if is_child:
            fields["family_name"] = st.text_input("이름", value=slot["family_name"], help="예: 길동(吉童)", key=_key(index, "family_name", slot))
            fields["clan"] = st.text_input("이름 한자 뜻/음", value=slot["clan"], key=_key(index, "clan", slot))
        elif gender in ("F", "COUPLE"):
            fields["clan"] = st.text_input(
                "본관", value=slot["clan"], help="괄호 안에 참고 정보를 적을 수 있습니다. 예: 김해(金海)", key=_key(index, "clan", slot)
            )
            fields["family_name"] = st.text_input("성씨", value=slot["family_name"], key=_key(index, "family_name", slot))
            if has_tertiary:
                fields["clan_tertiary"] = st.text_input("재취비 본관", value=slot["clan_tertiary"], key=_key(index, "clan_tertiary", slot))
                fields["family_name_tertiary"] = st.text_input(
                    "재취비 성씨", value=slot["family_name_tertiary"], key=_key(index, "family_name_tertiary", slot)
                )

        korean = {
            p: st.text_input(f"한글 ({POSITION_LABELS[p]})", value=slot[f"korean_{p}"], key=_key(index, f"korean_{p}", slot))
            for p in positions
        }
        hanja = {
            p: st.text_input(f"한자 ({POSITION_LABELS[p]})", value=slot[f"hanja_{p}"], key=_key(index, f"hanja_{p}", slot))
            for p in positions
        }

        if st.form_submit_button("적용"):
            for field, value in fields.items():
                if value != slot[field]:
                    session_post(f"/slots/{index}/detail", {"field": field, "value": value}, context="Detail error")
            for p, text in korean.items():
                if text != slot[f"korean_{p}"]:
                    session_post(f"/slots/{index}/korean", {"position": p, "text": text}, context="Korean text error")
            for p, text in hanja.items():
                if text != slot[f"hanja_{p}"]:
                    session_post(f"/slots/{index}/hanja", {"position": p, "text": text}, context="Hanja text error")
            st.rerun()

    c1, c2 = st.columns(2)
    with c1:
        if gender == "COUPLE":
            label = "재취비 제거" if has_tertiary else "재취비 추가 (삼위 합설)"
            if st.button(label, key=f"tertiary_{index}"):
                session_post(f"/slots/{index}/tertiary", context="Tertiary error")
                st.rerun()
    with c2:
        if st.button("한자로 변환", key=f"convert_{index}", disabled=bool(status.get("converting"))):
            with st.spinner("한자 변환 중..."):
                session_post(f"/slots/{index}/convert", timeout=180, context="Conversion error")
            st.rerun()


left, right = st.columns([2, 3])

with left:
    tabs = st.tabs(["지방 1", "지방 2", "지방 3"])
    for i, tab in enumerate(tabs):
        with tab:
            render_slot_editor(i)

with right:
    pending = status.get("pending", [])
    if pending:
        st.warning(f"지원되지 않는 한자 이미지 생성 중: {' '.join(pending)}")
    b1, b2 = st.columns(2)
    with b1:
        if st.button("새로고침"):
            refresh_status()
            st.rerun()
    with b2:
        if st.button("글자 다시 검사"):
            session_post("/rescan", context="Rescan error")
            st.rerun()

    try:
        svg = api_get(f"/sessions/{st.session_state.session_id}/preview.svg", timeout=20).text
        components.html(
            f'<div style="display:flex;justify-content:center;background:#f5f5f4;padding:8px">{svg}</div>',
            height=1160,
            scrolling=True,
        )
    except Exception as e:
        show_error(e, "Preview error")

    export_ready = bool(status.get("export_ready"))
    if st.button("PDF 만들기", disabled=not export_ready):
        try:
            with st.spinner("PDF 생성 중..."):
                st.session_state.pdf_bytes = api_get(f"/sessions/{st.session_state.session_id}/pdf", timeout=60).content
        except requests.HTTPError as e:
            st.session_state.pdf_bytes = None
            if _status_code(e) == 409:
                st.info("한자 이미지 생성이 끝난 뒤 다시 시도해주세요.")
            else:
                show_error(e, "PDF error")
        except Exception as e:
            st.session_state.pdf_bytes = None
            show_error(e, "PDF error")

    if st.session_state.pdf_bytes:
        st.download_button(
            "PDF 다운로드",
            data=st.session_state.pdf_bytes,
            file_name="jibang_a4.pdf",
            mime="application/pdf",
            disabled=not export_ready,
        )

# ---- auto refresh ----
# Edits schedule a debounced glyph rescan on the server; poll until the sheet settles.
if not st.session_state.status.get("export_ready"):
    time.sleep(STATUS_POLL_SEC)
    st.rerun()
