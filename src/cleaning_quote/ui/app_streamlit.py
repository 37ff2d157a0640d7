"""
Streamlit UI for appliance-cleaning quotes.

Two modes on one page:
- Builder (no ?cid in the URL): metadata form, editable item grid with live
  pricing, share-link creation
- Viewer (?cid=<id>, optionally &admin=1): read-only quote, customer
  confirm, admin cancel with reason
"""
import streamlit as st
import pandas as pd
import sys
from pathlib import Path
from datetime import datetime
from urllib.parse import quote as urlquote, urlencode

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from cleaning_quote.config.settings import get_settings
from cleaning_quote.engine.models import Quote, QuoteStatus
from cleaning_quote.errors import QuoteError, ResourceNotFoundError
from cleaning_quote.lifecycle.protocol import ConfirmedMarkers, ConfirmFlow
from cleaning_quote.lifecycle.view_model import INVALID_LINK_NOTICE, build_view_model
from cleaning_quote.services.quote_service import QuoteService
from cleaning_quote.sharing.links import build_data_link, parse_share_link
from cleaning_quote.sharing.serializer import quote_from_payload, quote_to_payload


SERVICES = [
    "冷氣清洗", "洗衣機清洗", "防霉處理", "臭氧殺菌", "變形金剛機型",
    "一體式水盤機型", "超長費用", "自來水管清洗", "水塔清洗",
]
OPTIONS = [
    "分離式（壁掛式）", "吊隱式（隱藏式）", "直立式", "家用", "特殊機型額外加收費",
    "冷氣防霉處理（抑菌噴劑）", "高臭氧殺菌30分鐘", "加購價",
    "無廚一衛", "一廚一衛", "一廚兩衛", "一廚三衛", "一廚四衛",
]

GRID_COLUMNS = {
    'service': "服務項目",
    'option': "類型/說明",
    'quantity': "數量",
    'unit_price': "單價",
    'overridden': "手動價",
    'subtotal': "小計",
    'discount_note': "備註",
}


st.set_page_config(
    page_title="家電清洗報價單",
    layout="wide",
    initial_sidebar_state="collapsed"
)


@st.cache_resource
def get_service():
    """Get cached service instance."""
    return QuoteService()


try:
    settings = get_settings()
    service = get_service()
except Exception as e:
    st.error(f"System Error: {e}")
    st.stop()


def items_frame(quote: Quote) -> pd.DataFrame:
    """Grid rows for the current items."""
    df = pd.DataFrame(
        [
            {
                'service': it.service,
                'option': it.option,
                'quantity': it.quantity,
                'unit_price': it.unit_price,
                'overridden': it.overridden,
                'subtotal': it.subtotal,
                'discount_note': it.discount_note,
            }
            for it in quote.items
        ],
        columns=list(GRID_COLUMNS),
    ).astype({'quantity': 'int64', 'unit_price': 'float64', 'overridden': 'bool', 'subtotal': 'float64'})
    return df.rename(columns=GRID_COLUMNS)


def frame_rows(df: pd.DataFrame) -> list[dict]:
    """Edited grid back to plain row dicts; NaN cells become None."""
    reverse = {label: key for key, label in GRID_COLUMNS.items()}
    df = df.rename(columns=reverse).astype(object)
    df = df.where(pd.notna(df), None)
    return df.to_dict(orient='records')


def render_metadata(quote: Quote, disabled: bool = False):
    st.caption(quote.quote_info)
    c1, c2 = st.columns(2)
    with c1:
        quote.customer = st.text_input("客戶姓名", value=quote.customer, disabled=disabled)
        quote.phone = st.text_input("聯絡電話", value=quote.phone, disabled=disabled)
        quote.address = st.text_input("清洗地址", value=quote.address, disabled=disabled)
        quote.clean_time = st.text_input("預約時間", value=quote.clean_time, disabled=disabled)
    with c2:
        quote.technician = st.text_input("技師姓名", value=quote.technician, disabled=disabled)
        quote.tech_phone = st.text_input("技師電話", value=quote.tech_phone, disabled=disabled)
        quote.other_notes = st.text_area("其他備註", value=quote.other_notes, disabled=disabled, height=122)


def render_total(quote: Quote):
    m1, m2 = st.columns(2)
    m1.metric("項目數", len(quote.items))
    m2.metric("合計", f"{quote.total:,.0f} 元")


# ============================================================================
# VIEWER
# ============================================================================
def viewer_link():
    """ShareLink for the current page, or None in builder mode."""
    params = {k: st.query_params.get(k) for k in ('cid', 'admin', 'data') if st.query_params.get(k)}
    if not params:
        return None
    if 'data' in params and 'cid' not in params:
        suffix = "&admin=1" if params.get('admin') == '1' else ""
        return parse_share_link(f"#data={urlquote(params['data'], safe='')}{suffix}")
    return parse_share_link("?" + urlencode(params))


def render_viewer(link):
    markers = ConfirmedMarkers(st.session_state)

    if link.cid:
        try:
            quote = service.load_quote(link.cid)
        except ResourceNotFoundError:
            st.error(INVALID_LINK_NOTICE)
            st.stop()
        except QuoteError as e:
            st.error(f"{INVALID_LINK_NOTICE}（{e}）")
            st.stop()
    elif link.data is not None:
        quote = quote_from_payload(link.data)
        quote.status = QuoteStatus.SHARED
    else:
        st.error(INVALID_LINK_NOTICE)
        st.stop()

    vm = build_view_model(
        quote.status,
        admin=link.admin,
        locally_confirmed=markers.is_confirmed(link),
        cancel_reason=quote.cancel_reason,
        cancelled_at=quote.cancelled_at,
    )

    st.title("家電清洗報價單")
    if vm.banner:
        st.error(vm.banner)
    elif vm.notice:
        st.info(vm.notice)

    with st.container(border=True):
        render_metadata(quote, disabled=True)

    st.dataframe(items_frame(quote), use_container_width=True, hide_index=True)
    render_total(quote)

    if vm.can_confirm:
        st.divider()
        if st.button("✅ 我同意此報價", type="primary"):
            try:
                outcome = ConfirmFlow(service, markers).run(quote, link)
            except QuoteError as e:
                st.error(f"送出失敗，請稍後再試：{e}")
            else:
                if outcome.lock_error:
                    st.warning(f"已送出確認，但封存失敗：{outcome.lock_error}")
                else:
                    st.success("已送出確認，謝謝！")
                st.rerun()

    if vm.can_cancel and link.cid:
        st.divider()
        with st.form("cancel_form"):
            st.markdown("##### 🛑 作廢此報價單")
            reason = st.text_input("作廢原因（選填）", max_chars=500)
            if st.form_submit_button("確認作廢", type="secondary"):
                try:
                    service.cancel(link.cid, reason)
                except QuoteError as e:
                    st.error(f"作廢失敗：{e}")
                else:
                    st.success("已作廢")
                    st.rerun()


# ============================================================================
# BUILDER
# ============================================================================
def render_builder():
    if 'quote' not in st.session_state:
        st.session_state.quote = Quote()
    quote = st.session_state.quote

    st.title("家電清洗報價單")
    st.caption(f"v1.0 | {len(service.engine.rule_matcher.rules)} 條計價規則 | {datetime.now().strftime('%Y-%m-%d')}")

    with st.container(border=True):
        render_metadata(quote)

    st.subheader("報價項目")
    edited_df = st.data_editor(
        items_frame(quote),
        num_rows="dynamic",
        use_container_width=True,
        hide_index=True,
        column_config={
            GRID_COLUMNS['service']: st.column_config.SelectboxColumn(GRID_COLUMNS['service'], options=SERVICES),
            GRID_COLUMNS['option']: st.column_config.SelectboxColumn(GRID_COLUMNS['option'], options=OPTIONS),
            GRID_COLUMNS['quantity']: st.column_config.NumberColumn(GRID_COLUMNS['quantity'], min_value=1, step=1, default=1),
            GRID_COLUMNS['unit_price']: st.column_config.NumberColumn(GRID_COLUMNS['unit_price'], min_value=0, step=50),
            GRID_COLUMNS['overridden']: st.column_config.CheckboxColumn(GRID_COLUMNS['overridden'], default=False),
            GRID_COLUMNS['subtotal']: st.column_config.NumberColumn(GRID_COLUMNS['subtotal'], disabled=True),
            GRID_COLUMNS['discount_note']: st.column_config.TextColumn(GRID_COLUMNS['discount_note'], disabled=True),
        },
    )

    before = quote_to_payload(quote)
    quote.apply_edits(frame_rows(edited_df))
    result = service.engine.reprice(quote)
    if quote_to_payload(quote) != before:
        st.rerun()

    render_total(quote)
    with st.expander("🔍 計價明細"):
        st.code(result.get_trace_text() or "(無項目)", language=None)

    st.divider()
    c1, c2 = st.columns(2)
    with c1:
        if st.button("🔗 產生分享連結", type="primary", disabled=not quote.items):
            try:
                shared = service.create_share(quote_to_payload(quote))
            except QuoteError as e:
                st.error(f"上傳失敗：{e}")
            else:
                st.success("已建立分享連結")
                st.code(shared['shareUrl'] or f"?cid={shared['id']}", language=None)
                st.caption(f"管理連結：?cid={shared['id']}&admin=1")
    with c2:
        if st.button("🧹 清空報價單"):
            st.session_state.quote = Quote()
            st.rerun()

    if settings.site_base_url and quote.items:
        with st.expander("離線連結（內嵌資料）"):
            st.code(build_data_link(settings.site_base_url, quote_to_payload(quote)), language=None)


link = viewer_link()
if link is None:
    render_builder()
else:
    render_viewer(link)
