"""
Category presets and category typing.

Default presets mirror the household chart of accounts the tracker ships
with; a stored document's non-empty lists always win over the defaults.
"""

from __future__ import annotations

from typing import List, Optional

from ..store.schema import (
    Account,
    CategoryPresets,
    CategoryTypes,
    ExpenseDetailGroup,
    LedgerEntry,
)

SAVINGS_CATEGORY = "저축성지출"
CARD_PAYMENT = ("신용카드", "카드대금")
FX_CATEGORY = "환전"
# Plain account-to-account moves; never counted as savings.
GENERAL_TRANSFER_CATEGORIES = ("이체", "계좌이체", "카드결제이체")

_EXPENSE_DETAILS = [
    (SAVINGS_CATEGORY, ["예금", "청년도약계좌", "주택청약", "투자(ISA)", "연금저축", "나무(CMA)", "투자(IRP)",
                        "비상금", "빚상환용", "해외주식", "토스주식", "가상자산", "기타저축"]),
    ("식비", ["시장/마트", "외식/배달", "간식", "술/회식", "커피숍", "편의점", "기타식비"]),
    ("유류교통비", ["버스/지하철", "택시", "유류비/충전비", "자동차용품", "수리비", "유지보수비", "톨비/하이패스",
                "주차비", "자동차보험", "자동차할부", "자동차세", "기차", "항공", "기타교통"]),
    ("생활용품비", ["가구/가전", "주방/욕실", "오피스/문구", "멤버십", "기타생활용품", "기타잡지출"]),
    ("데이트비", ["식사", "카페", "이동", "숙박", "문화생활", "간식", "물건", "선물", "기타데이트"]),
    ("의류미용비", ["의류", "패션잡화", "세탁비", "기타의류", "화장품", "미용실", "기타미용"]),
    ("교육비", ["학교", "학원", "도서", "강의", "등록금", "헬스장", "운동", "자격증", "기타교육"]),
    ("문화생활비", ["영화/관람", "여가", "여행", "OTT", "대관비", "기타문화생활"]),
    ("의료건강비", ["병원", "의약품", "영양제", "보험료", "기타의료비"]),
    ("구독비", ["유튜브", "넷플릭스", "쿠팡", "ChatGPT", "microsoft", "카카오톡서랍", "네이버", "토스프라임",
             "삼성케어플러스", "CursorAI"]),
    ("통신비", ["핸드폰", "인터넷", "IPTV", "우편/택배", "기타통신"]),
    ("경조사비", ["축의금", "조의금", "생일", "기부금", "모임회비", "선물", "기타경조사"]),
    ("유흥오락비", ["복권", "연금복권", "경마", "게임"]),
    ("주거비", ["재산세", "월세", "주담대이자", "주담대원금", "관리비", "수도세", "전기세", "가스비", "기타주거비"]),
    ("놀이", ["피씨방", "노래방", "풋살비"]),
    ("대출", ["학자금대출"]),
    ("실수", ["아차차", "구독미스", "API 초과"]),
    (CARD_PAYMENT[0], [CARD_PAYMENT[1]]),
]

_INCOME = ["이월", "급여", "수당", "배당", "지역화폐", "정산", "상여", "투자수익", "이자", "부수익", "대출",
           "처분소득", "용돈", "지원", "기타수입"]
_TRANSFER = ["저축이체", "계좌이체", "카드결제이체"]
_FIXED = ["주거비", "통신비", "구독비"]


def default_category_presets() -> CategoryPresets:
    details = [ExpenseDetailGroup(main=m, subs=list(s)) for m, s in _EXPENSE_DETAILS]
    return CategoryPresets(
        income=list(_INCOME),
        expense=[d.main for d in details],
        expense_details=details,
        transfer=list(_TRANSFER),
        category_types=CategoryTypes(fixed=list(_FIXED), savings=[SAVINGS_CATEGORY], transfer=list(_TRANSFER)),
    )


def merge_category_presets(stored: Optional[CategoryPresets]) -> CategoryPresets:
    """Fill empty lists of a stored preset document from the defaults."""
    defaults = default_category_presets()
    if stored is None:
        return defaults
    return CategoryPresets(
        income=stored.income or defaults.income,
        expense=stored.expense or defaults.expense,
        expense_details=stored.expense_details or defaults.expense_details,
        transfer=stored.transfer or defaults.transfer,
        category_types=stored.category_types or defaults.category_types,
    )


def is_card_payment(entry: LedgerEntry) -> bool:
    return entry.category == CARD_PAYMENT[0] and entry.sub_category == CARD_PAYMENT[1]


def savings_categories(presets: Optional[CategoryPresets]) -> List[str]:
    if presets is not None and presets.category_types is not None and presets.category_types.savings:
        return presets.category_types.savings
    return [SAVINGS_CATEGORY]


def is_savings_expense_entry(entry: LedgerEntry, accounts: List[Account]) -> bool:
    """True for money moved into savings: a `저축성지출` expense, or a
    transfer landing in a savings/securities account."""
    if entry.category in GENERAL_TRANSFER_CATEGORIES:
        return False
    if entry.kind == "transfer" and entry.to_account_id:
        for a in accounts:
            if a.id == entry.to_account_id:
                return a.type in ("securities", "savings")
    return entry.kind == "expense" and entry.category == SAVINGS_CATEGORY


def category_type(
    entry: LedgerEntry,
    presets: Optional[CategoryPresets] = None,
    accounts: Optional[List[Account]] = None,
) -> str:
    """Classify an entry as income | savings | transfer | fixed | variable."""
    if entry.kind == "income":
        return "income"
    if entry.category not in GENERAL_TRANSFER_CATEGORIES:
        if entry.category in savings_categories(presets):
            return "savings"
        if is_savings_expense_entry(entry, accounts or []):
            return "savings"
    if entry.kind == "transfer":
        return "transfer"
    fixed = []
    if presets is not None and presets.category_types is not None:
        fixed = presets.category_types.fixed
    if entry.category in fixed or entry.is_fixed_expense:
        return "fixed"
    if entry.category == "주거비" and entry.sub_category == "주담대이자":
        return "fixed"
    return "variable"
