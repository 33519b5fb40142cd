"""
Frontend for the Face Unlock enrollment system: session controller, frame
loop, backend clients and the Gradio UI.
"""
