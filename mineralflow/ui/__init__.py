# Streamlit rendering
